"""Платежные шлюзы."""
from typing import Iterator, Mapping

import httpx

from storefront.config import Settings, settings
from storefront.core.exceptions import UnsupportedProvider
from storefront.services.gateways.base import GatewayAdapter
from storefront.services.gateways.momo import MoMoGateway
from storefront.services.gateways.vnpay import VNPayGateway


class GatewayRegistry(Mapping[str, GatewayAdapter]):
    """Адаптеры шлюзов по тегу провайдера."""

    def __init__(self, adapters: list[GatewayAdapter]):
        self._adapters = {adapter.provider: adapter for adapter in adapters}

    def __getitem__(self, provider: str) -> GatewayAdapter:
        return self._adapters[provider]

    def __iter__(self) -> Iterator[str]:
        return iter(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)

    def resolve(self, provider: str) -> GatewayAdapter:
        """Получить адаптер или UnsupportedProvider."""
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise UnsupportedProvider(provider)
        return adapter


def build_gateway_registry(
    config: Settings = settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GatewayRegistry:
    """Собрать адаптеры из настроек."""
    return GatewayRegistry(
        [
            VNPayGateway(
                tmn_code=config.vnpay_tmn_code,
                secret_key=config.vnpay_secret_key,
                payment_url=config.vnpay_payment_url,
                return_url=config.vnpay_return_url,
                version=config.vnpay_version,
                locale=config.vnpay_locale,
                currency=config.payment_currency,
                timezone_offset_hours=config.vnpay_timezone_offset_hours,
            ),
            MoMoGateway(
                partner_code=config.momo_partner_code,
                access_key=config.momo_access_key,
                secret_key=config.momo_secret_key,
                endpoint=config.momo_endpoint,
                redirect_url=config.momo_redirect_url,
                ipn_url=config.momo_ipn_url,
                partner_name=config.momo_partner_name,
                store_id=config.momo_store_id,
                request_type=config.momo_request_type,
                lang=config.momo_lang,
                timeout=config.payment_http_timeout,
                transport=transport,
            ),
        ]
    )


__all__ = [
    "GatewayAdapter",
    "GatewayRegistry",
    "MoMoGateway",
    "VNPayGateway",
    "build_gateway_registry",
]
