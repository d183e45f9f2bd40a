"""Проверка подписи входящих уведомлений шлюзов."""
from typing import Mapping

from storefront.schemas.payment import VerificationResult
from storefront.services.gateways import GatewayRegistry


class NotificationVerifier:
    """Выбирает адаптер по тегу провайдера и проверяет подпись. Заказы не трогает."""

    def __init__(self, gateways: GatewayRegistry):
        self.gateways = gateways

    def verify(self, provider: str, raw_params: Mapping[str, object]) -> VerificationResult:
        """
        Raises:
            UnsupportedProvider: неизвестный тег провайдера
        """
        return self.gateways.resolve(provider).verify_inbound(raw_params)
