"""Gateway selection by payment method type.

The route table is fixed at construction; nothing inspects types at
runtime.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, Iterable, Mapping

from django.conf import settings

from modules.payments.constants import GatewayName
from modules.payments.exceptions import GatewayConfigurationError
from modules.payments.gateways.base import IPaymentGatewayAdapter
from modules.payments.gateways.direct_card import (
    DirectCardConfig,
    DirectCardGatewayAdapter,
)
from modules.payments.gateways.http import GatewayHttpClient, RetryPolicy
from modules.payments.gateways.vnpay import VNPayConfig, VNPayGatewayAdapter


class GatewayRegistry:
    def __init__(
        self,
        adapters: Iterable[IPaymentGatewayAdapter],
        routes: Mapping[str, str],
        default: str = GatewayName.VNPAY,
    ) -> None:
        self._adapters: Dict[str, IPaymentGatewayAdapter] = {
            adapter.name: adapter for adapter in adapters
        }
        self._routes = dict(routes)
        self._default = default

    def for_method_type(self, method_type: str) -> IPaymentGatewayAdapter:
        return self.get(self._routes.get(method_type, self._default))

    def get(self, gateway_name: str) -> IPaymentGatewayAdapter:
        try:
            return self._adapters[gateway_name]
        except KeyError:
            raise GatewayConfigurationError(
                f"No adapter registered for gateway '{gateway_name}'."
            ) from None


def build_http_client() -> GatewayHttpClient:
    return GatewayHttpClient(
        timeout=settings.PAYMENT_GATEWAY_TIMEOUT,
        retry_policy=RetryPolicy(
            max_attempts=settings.PAYMENT_GATEWAY_MAX_RETRIES,
            backoff_seconds=settings.PAYMENT_GATEWAY_BACKOFF,
        ),
    )


@lru_cache(maxsize=None)
def shared_http_client() -> GatewayHttpClient:
    """Process-wide pooled client.  ``httpx.Client`` is safe to share between threads."""
    return build_http_client()


def build_gateway_registry(http_client: GatewayHttpClient | None = None) -> GatewayRegistry:
    """Registry with every gateway configured from Django settings."""
    http_client = http_client or shared_http_client()
    vnpay = VNPayGatewayAdapter(
        VNPayConfig(
            tmn_code=settings.VNPAY_TMN_CODE,
            hash_secret=settings.VNPAY_HASH_SECRET,
            pay_url=settings.VNPAY_PAY_URL,
            api_url=settings.VNPAY_API_URL,
            return_url=settings.VNPAY_RETURN_URL,
            version=settings.VNPAY_VERSION,
            locale=settings.VNPAY_LOCALE,
            expire_minutes=settings.VNPAY_EXPIRE_MINUTES,
        ),
        http_client,
    )
    direct_card = DirectCardGatewayAdapter(
        DirectCardConfig(
            capture_url=settings.CARD_CAPTURE_URL,
            merchant_id=settings.CARD_MERCHANT_ID,
            hash_secret=settings.CARD_HASH_SECRET,
            return_url=settings.CARD_RETURN_URL,
            expire_minutes=settings.VNPAY_EXPIRE_MINUTES,
        ),
        http_client,
    )
    return GatewayRegistry([vnpay, direct_card], settings.PAYMENT_GATEWAY_ROUTES)
