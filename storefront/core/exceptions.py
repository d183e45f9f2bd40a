"""
Исключения приложения.

Иерархия:
    StorefrontError
    ├── PaymentError
    │   ├── InvalidCheckoutData
    │   │   └── UnsupportedProvider
    │   ├── InvalidAmount
    │   └── PaymentGatewayError
    └── OrderNotFoundError

Исходы сверки платежа (InvalidSignature, AmountMismatch, AlreadyReconciled)
исключениями не являются - см. ReconcileOutcome.
"""


class StorefrontError(Exception):
    """
    Базовое исключение приложения.

    Attributes:
        message: Текст ошибки
        details: Дополнительный контекст (код заказа, суммы и т.д.)
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.__class__.__name__}('{self.message}', {details_str})"
        return f"{self.__class__.__name__}('{self.message}')"


class PaymentError(StorefrontError):
    """Базовое исключение для ошибок оплаты."""
    pass


class InvalidCheckoutData(PaymentError):
    """Не хватает данных для оформления оплаты или заказ нельзя оплатить."""
    pass


class UnsupportedProvider(InvalidCheckoutData):
    """Неизвестный платежный шлюз."""

    def __init__(self, provider: str):
        super().__init__(
            f"Unsupported payment provider: {provider}",
            details={"provider": provider},
        )
        self.provider = provider


class InvalidAmount(PaymentError):
    """Сумма к оплате должна быть больше нуля."""

    def __init__(self, order_code: str, amount):
        super().__init__(
            f"Invalid payment amount for order {order_code}: {amount}",
            details={"order_code": order_code, "amount": str(amount)},
        )
        self.order_code = order_code
        self.amount = amount


class PaymentGatewayError(PaymentError):
    """Шлюз отказал в создании платежа или недоступен."""
    pass


class OrderNotFoundError(StorefrontError):
    """Заказ не найден."""

    def __init__(self, order_code: str):
        super().__init__(f"Order {order_code} not found", details={"order_code": order_code})
        self.order_code = order_code
