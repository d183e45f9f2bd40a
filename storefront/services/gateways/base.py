"""Общий интерфейс платежного шлюза."""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Mapping

from storefront.models.payment import PaymentSession
from storefront.schemas.payment import (
    ClientContext,
    GatewayAcknowledgement,
    ReconcileOutcome,
    VerificationResult,
)

REQUEST_ID_SEPARATOR = "_"


def build_request_id(order_code: str, suffix: int) -> str:
    """Идентификатор попытки оплаты: код заказа + монотонный суффикс."""
    return f"{order_code}{REQUEST_ID_SEPARATOR}{suffix}"


def order_code_from_request_id(request_id: str | None) -> str | None:
    """Восстановить код заказа из идентификатора попытки."""
    if not request_id:
        return None
    order_code, sep, suffix = request_id.rpartition(REQUEST_ID_SEPARATOR)
    if sep and order_code and suffix.isdigit():
        return order_code
    return request_id


class GatewayAdapter(ABC):
    """
    Адаптер одного платежного шлюза.

    Знает имена параметров шлюза, порядок полей в подписи и словарь кодов ответа.
    """

    provider: str
    # Допуск при сравнении суммы после обратного перевода из единиц шлюза
    amount_tolerance: Decimal = Decimal("0")
    response_messages: Mapping[str, str] = {}
    unknown_response_message = "Unknown error"

    @abstractmethod
    async def build_redirect_url(self, session: PaymentSession, context: ClientContext) -> str:
        """Построить URL, на который перенаправляется плательщик."""

    @abstractmethod
    def verify_inbound(self, raw: Mapping[str, object]) -> VerificationResult:
        """Проверить подпись входящего уведомления. Никогда не бросает исключений."""

    @abstractmethod
    def acknowledge(self, outcome: ReconcileOutcome) -> GatewayAcknowledgement:
        """Ответ на IPN для данного исхода сверки."""

    @abstractmethod
    def acknowledge_error(self) -> GatewayAcknowledgement:
        """Ответ на IPN при непредвиденной ошибке."""

    def get_response_message(self, code: str | None) -> str:
        if code is None:
            return self.unknown_response_message
        return self.response_messages.get(code, self.unknown_response_message)

    @staticmethod
    def _normalize(raw: Mapping[str, object]) -> dict[str, str]:
        """Привести значения к строкам: IPN приходит JSON'ом с числами."""
        normalized = {}
        for key, value in raw.items():
            if value is None:
                normalized[key] = ""
            elif isinstance(value, bool):
                normalized[key] = "true" if value else "false"
            else:
                normalized[key] = str(value)
        return normalized
