from .django_repository import (
    InvoiceDjangoRepository,
    PaymentMethodDjangoRepository,
    PaymentTransactionDjangoLedger,
)
from .interfaces import IInvoiceRepository, IPaymentMethodRepository, ITransactionLedger

__all__ = [
    "IInvoiceRepository",
    "IPaymentMethodRepository",
    "ITransactionLedger",
    "InvoiceDjangoRepository",
    "PaymentMethodDjangoRepository",
    "PaymentTransactionDjangoLedger",
]
