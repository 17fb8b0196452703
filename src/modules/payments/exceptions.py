"""Payment domain exceptions.

Gateway errors are split by whether a retry can help.  Callback
rejections are security relevant: they are always logged and never
mutate order or transaction state.
"""

from __future__ import annotations


class PaymentMethodNotFound(Exception):
    """The payment method does not exist or belongs to someone else."""


class PaymentAlreadyInProgress(Exception):
    """The order already has a transaction waiting on the gateway."""


class RefundNotAllowed(Exception):
    """The order has no successful charge that could be refunded."""


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class GatewayError(Exception):
    """Base class for payment gateway failures."""


class GatewayConfigurationError(GatewayError):
    """Merchant code, secret or endpoint is missing.  Not retryable."""


class GatewayUnavailable(GatewayError):
    """Gateway unreachable or answering 5xx after all retries."""


class GatewayTimeout(GatewayError):
    """Gateway did not answer within the configured timeout after all retries."""


class GatewayRejected(GatewayError):
    """Gateway answered but refused the request (e.g. refund declined)."""


# ---------------------------------------------------------------------------
# Callback verification
# ---------------------------------------------------------------------------


class CallbackRejected(Exception):
    """Base class for callbacks that must not be applied."""


class InvalidSignature(CallbackRejected):
    """Secure hash missing or not matching the recomputed one."""


class AmountMismatch(CallbackRejected):
    """Callback amount differs from the amount on the transaction."""


class UnknownOrStaleTransaction(CallbackRejected):
    """Reference resolves to no transaction, or to one already settled differently.

    ``known`` is true in the second case.
    """

    def __init__(self, message: str, known: bool = False) -> None:
        self.known = known
        super().__init__(message)
