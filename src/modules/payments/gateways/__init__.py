from modules.payments.gateways.base import IPaymentGatewayAdapter
from modules.payments.gateways.direct_card import DirectCardGatewayAdapter
from modules.payments.gateways.registry import GatewayRegistry, build_gateway_registry
from modules.payments.gateways.vnpay import VNPayGatewayAdapter

__all__ = [
    "DirectCardGatewayAdapter",
    "GatewayRegistry",
    "IPaymentGatewayAdapter",
    "VNPayGatewayAdapter",
    "build_gateway_registry",
]
