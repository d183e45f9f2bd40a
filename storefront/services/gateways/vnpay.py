"""Адаптер VNPay."""
import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Mapping
from urllib.parse import quote_plus

from storefront.core.exceptions import PaymentGatewayError
from storefront.core.signature import canonicalize, sign, verify
from storefront.models.payment import PaymentSession
from storefront.schemas.payment import (
    ClientContext,
    GatewayAcknowledgement,
    PaymentProvider,
    ReconcileOutcome,
    VerificationResult,
)
from storefront.services.gateways.base import GatewayAdapter, order_code_from_request_id

logger = logging.getLogger(__name__)


def _encode(value: str) -> str:
    return quote_plus(value, safe="")


def to_minor_units(amount: Decimal) -> int:
    """VNPay принимает сумму, умноженную на 100."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value: str) -> Decimal:
    return Decimal(value) / 100


class VNPayGateway(GatewayAdapter):
    """
    VNPay: плательщик уходит по подписанному URL.

    В подписи участвуют все vnp_* параметры, кроме самой подписи, с непустыми
    значениями, отсортированные по ключу. Значения кодируются как в query string.
    """

    provider = PaymentProvider.VNPAY.value
    amount_tolerance = Decimal("0.01")

    HASH_ALGORITHM = "sha512"
    SIGNATURE_FIELD = "vnp_SecureHash"
    EXCLUDED_FIELDS = frozenset({"vnp_SecureHash", "vnp_SecureHashType"})
    REQUIRED_FIELDS = ("vnp_TxnRef", "vnp_Amount", "vnp_ResponseCode")
    DATE_FORMAT = "%Y%m%d%H%M%S"
    SUCCESS_CODE = "00"

    response_messages = {
        "00": "Transaction successful",
        "07": "Amount debited; transaction flagged as suspicious",
        "09": "Card or account is not registered for internet banking",
        "10": "Card or account verification failed more than 3 times",
        "11": "Payment window expired",
        "12": "Card or account is locked",
        "13": "Wrong one-time password",
        "24": "Customer cancelled the transaction",
        "51": "Insufficient balance",
        "65": "Daily transaction limit exceeded",
        "75": "Paying bank is under maintenance",
        "79": "Wrong payment password entered too many times",
        "99": "Other error",
    }

    # RspCode/Message, которые VNPay ожидает в ответ на IPN
    IPN_RESPONSES = {
        ReconcileOutcome.PAID: ("00", "Confirm Success"),
        ReconcileOutcome.FAILED: ("00", "Confirm Success"),
        ReconcileOutcome.ORDER_NOT_FOUND: ("01", "Order not found"),
        ReconcileOutcome.ALREADY_RECONCILED: ("02", "Order already confirmed"),
        ReconcileOutcome.AMOUNT_MISMATCH: ("04", "Invalid amount"),
        ReconcileOutcome.INVALID_SIGNATURE: ("97", "Invalid signature"),
    }

    PAYMENT_METHODS = [
        {"code": "VNPAYQR", "name": "VNPAY QR"},
        {"code": "VNBANK", "name": "Domestic ATM card / bank account"},
        {"code": "INTCARD", "name": "International card"},
    ]

    BANK_CODES = [
        {"code": "NCB", "name": "NCB"},
        {"code": "AGRIBANK", "name": "Agribank"},
        {"code": "SCB", "name": "SCB"},
        {"code": "SACOMBANK", "name": "Sacombank"},
        {"code": "EXIMBANK", "name": "Eximbank"},
        {"code": "VIETINBANK", "name": "VietinBank"},
        {"code": "VIETCOMBANK", "name": "Vietcombank"},
        {"code": "BIDV", "name": "BIDV"},
        {"code": "TECHCOMBANK", "name": "Techcombank"},
        {"code": "VPBANK", "name": "VPBank"},
        {"code": "MBBANK", "name": "MB Bank"},
        {"code": "ACB", "name": "ACB"},
        {"code": "TPBANK", "name": "TPBank"},
    ]

    def __init__(
        self,
        tmn_code: str,
        secret_key: str,
        payment_url: str,
        return_url: str,
        version: str = "2.1.0",
        locale: str = "vn",
        currency: str = "VND",
        timezone_offset_hours: int = 7,
    ):
        self.tmn_code = tmn_code
        self.secret_key = secret_key
        self.payment_url = payment_url
        self.return_url = return_url
        self.version = version
        self.locale = locale
        self.currency = currency
        self.timezone_offset = timedelta(hours=timezone_offset_hours)

    def _canonical(self, params: Mapping[str, str]) -> str:
        keys = sorted(
            key for key in params
            if key.startswith("vnp_") and key not in self.EXCLUDED_FIELDS
        )
        return canonicalize(params, keys, skip_empty=True, encode=_encode)

    def _format_date(self, value) -> str:
        return (value + self.timezone_offset).strftime(self.DATE_FORMAT)

    def build_payment_params(self, session: PaymentSession, context: ClientContext) -> dict[str, str]:
        """Параметры запроса на оплату (без подписи)."""
        description = context.order_description or f"Payment for order {session.order_code}"
        params = {
            "vnp_Version": self.version,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.tmn_code,
            "vnp_Amount": str(to_minor_units(session.amount)),
            "vnp_CurrCode": self.currency,
            "vnp_TxnRef": session.request_id,
            "vnp_OrderInfo": description,
            "vnp_OrderType": "other",
            "vnp_Locale": context.locale or self.locale,
            "vnp_ReturnUrl": self.return_url,
            "vnp_IpAddr": context.ip_address or "127.0.0.1",
            "vnp_CreateDate": self._format_date(session.created_at),
            "vnp_ExpireDate": self._format_date(session.expires_at),
        }
        if context.bank_code:
            params["vnp_BankCode"] = context.bank_code
        return params

    async def build_redirect_url(self, session: PaymentSession, context: ClientContext) -> str:
        if not self.tmn_code or not self.secret_key:
            raise PaymentGatewayError("VNPay is not configured", details={"provider": self.provider})

        params = self.build_payment_params(session, context)
        query = self._canonical(params)
        secure_hash = sign(query, self.secret_key, self.HASH_ALGORITHM)

        logger.info(
            f"VNPay payment URL built for order {session.order_code}: "
            f"txn_ref={session.request_id}, amount={session.amount}"
        )
        return f"{self.payment_url}?{query}&{self.SIGNATURE_FIELD}={secure_hash}"

    def verify_inbound(self, raw: Mapping[str, object]) -> VerificationResult:
        params = self._normalize(raw)
        request_id = params.get("vnp_TxnRef") or None
        declared = {
            "request_id": request_id,
            "order_code": order_code_from_request_id(request_id),
            "transaction_id": params.get("vnp_TransactionNo") or None,
            "response_code": params.get("vnp_ResponseCode") or None,
        }

        missing = [name for name in self.REQUIRED_FIELDS if not params.get(name)]
        if missing:
            logger.warning(f"VNPay notification is missing fields: {missing}")
            return VerificationResult.rejected(self.provider, "Missing required fields", **declared)

        supplied = params.get(self.SIGNATURE_FIELD)
        if not verify(self._canonical(params), self.secret_key, supplied, self.HASH_ALGORITHM):
            logger.warning(f"VNPay signature mismatch for txn_ref={request_id}")
            return VerificationResult.rejected(self.provider, "Invalid signature", **declared)

        try:
            amount = from_minor_units(params["vnp_Amount"])
        except (InvalidOperation, ValueError):
            amount = None
        if amount is None or not amount.is_finite():
            return VerificationResult.rejected(self.provider, "Malformed amount", **declared)

        response_code = declared["response_code"]
        transaction_status = params.get("vnp_TransactionStatus") or self.SUCCESS_CODE
        success = response_code == self.SUCCESS_CODE and transaction_status == self.SUCCESS_CODE

        return VerificationResult(
            verified=True,
            success=success,
            provider=self.provider,
            amount=amount,
            response_message=self.get_response_message(response_code),
            **declared,
        )

    def acknowledge(self, outcome: ReconcileOutcome) -> GatewayAcknowledgement:
        code, message = self.IPN_RESPONSES.get(outcome, ("99", "Unknown error"))
        return GatewayAcknowledgement(status_code=200, body={"RspCode": code, "Message": message})

    def acknowledge_error(self) -> GatewayAcknowledgement:
        return GatewayAcknowledgement(status_code=200, body={"RspCode": "99", "Message": "Unknown error"})

    def get_payment_methods(self) -> dict:
        return {"methods": self.PAYMENT_METHODS, "banks": self.BANK_CODES}
