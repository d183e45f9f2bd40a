"""Адаптер MoMo."""
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Mapping

import httpx

from storefront.core.exceptions import PaymentGatewayError
from storefront.core.signature import CanonicalizationError, canonicalize, sign, verify
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


class MoMoGateway(GatewayAdapter):
    """
    MoMo: платеж создается запросом к API шлюза, в ответ приходит payUrl.

    Порядок полей в подписи фиксирован документацией MoMo, пустые значения
    участвуют в подписи. accessKey в уведомлении не передается - подставляем свой.
    """

    provider = PaymentProvider.MOMO.value
    amount_tolerance = Decimal("0")

    HASH_ALGORITHM = "sha256"
    SIGNATURE_FIELD = "signature"
    SUCCESS_CODE = "0"

    CREATE_SIGNATURE_FIELDS = (
        "accessKey",
        "amount",
        "extraData",
        "ipnUrl",
        "orderId",
        "orderInfo",
        "partnerCode",
        "redirectUrl",
        "requestId",
        "requestType",
    )
    RESULT_SIGNATURE_FIELDS = (
        "accessKey",
        "amount",
        "extraData",
        "message",
        "orderId",
        "orderInfo",
        "orderType",
        "partnerCode",
        "payType",
        "requestId",
        "responseTime",
        "resultCode",
        "transId",
    )

    response_messages = {
        "0": "Transaction successful",
        "9000": "Transaction authorized, awaiting capture",
        "8000": "Transaction is being processed",
        "7000": "Transaction is being processed",
        "1000": "Transaction initiated, waiting for user confirmation",
        "1001": "Insufficient balance",
        "1002": "Rejected by the issuer",
        "1003": "Transaction cancelled",
        "1004": "Amount exceeds the payment limit",
        "1005": "Payment URL or QR code expired",
        "1006": "User declined the payment",
        "1007": "User account is inactive",
        "1017": "Cancelled by the merchant",
        "1026": "Restricted by promotion rules",
        "1080": "Refund attempt failed",
        "10": "System is under maintenance",
        "11": "Access denied",
        "12": "Unsupported API version",
        "13": "Merchant authentication failed",
        "20": "Bad request format",
        "21": "Invalid amount",
        "22": "Amount out of range",
        "40": "Duplicated requestId",
        "41": "Duplicated orderId",
        "42": "Invalid or missing orderId",
        "43": "Conflicting transaction in progress",
        "99": "Unknown error",
    }

    def __init__(
        self,
        partner_code: str,
        access_key: str,
        secret_key: str,
        endpoint: str,
        redirect_url: str,
        ipn_url: str,
        partner_name: str = "Storefront",
        store_id: str = "STOREFRONT",
        request_type: str = "payWithMethod",
        lang: str = "vi",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.partner_code = partner_code
        self.access_key = access_key
        self.secret_key = secret_key
        self.endpoint = endpoint
        self.redirect_url = redirect_url
        self.ipn_url = ipn_url
        self.partner_name = partner_name
        self.store_id = store_id
        self.request_type = request_type
        self.lang = lang
        self.timeout = timeout
        self.transport = transport

    @staticmethod
    def format_amount(amount: Decimal) -> str:
        """MoMo принимает целую сумму в донгах."""
        return str(int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))

    def build_create_payload(self, session: PaymentSession, context: ClientContext) -> dict:
        """Тело запроса на создание платежа с подписью."""
        fields = {
            "accessKey": self.access_key,
            "amount": self.format_amount(session.amount),
            "extraData": "",
            "ipnUrl": self.ipn_url,
            # orderId у MoMo должен быть уникален для каждой попытки
            "orderId": session.request_id,
            "orderInfo": context.order_description or f"Payment for order {session.order_code}",
            "partnerCode": self.partner_code,
            "redirectUrl": self.redirect_url,
            "requestId": session.request_id,
            "requestType": self.request_type,
        }
        signature = sign(
            canonicalize(fields, self.CREATE_SIGNATURE_FIELDS),
            self.secret_key,
            self.HASH_ALGORITHM,
        )

        payload = {key: value for key, value in fields.items() if key != "accessKey"}
        payload.update(
            {
                "partnerName": self.partner_name,
                "storeId": self.store_id,
                "lang": context.locale or self.lang,
                "autoCapture": True,
                "signature": signature,
            }
        )
        return payload

    async def build_redirect_url(self, session: PaymentSession, context: ClientContext) -> str:
        if not self.partner_code or not self.access_key or not self.secret_key:
            raise PaymentGatewayError("MoMo is not configured", details={"provider": self.provider})

        payload = self.build_create_payload(session, context)
        logger.info(f"Creating MoMo payment for order {session.order_code}: request_id={session.request_id}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(self.endpoint, json=payload)
            except httpx.HTTPError as e:
                logger.error(f"MoMo API request failed: {e}")
                raise PaymentGatewayError(f"MoMo API request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"MoMo API returned non-JSON response: {response.status_code}")
            raise PaymentGatewayError("Failed to parse MoMo response") from e

        result_code = str(data.get("resultCode"))
        if result_code != self.SUCCESS_CODE:
            logger.error(f"MoMo refused payment for order {session.order_code}: {data}")
            raise PaymentGatewayError(
                f"MoMo payment failed: {data.get('message') or self.get_response_message(result_code)}",
                details={"result_code": result_code, "request_id": session.request_id},
            )

        pay_url = data.get("payUrl")
        if not pay_url:
            logger.error(f"MoMo payment created but no payUrl in response: {data}")
            raise PaymentGatewayError("MoMo payment created but no payUrl in response")

        return pay_url

    def verify_inbound(self, raw: Mapping[str, object]) -> VerificationResult:
        params = self._normalize(raw)
        request_id = params.get("orderId") or None
        declared = {
            "request_id": request_id,
            "order_code": order_code_from_request_id(request_id),
            "transaction_id": params.get("transId") or None,
            "response_code": params.get("resultCode") or None,
        }

        supplied = params.get(self.SIGNATURE_FIELD)
        if not supplied:
            return VerificationResult.rejected(self.provider, "Missing signature", **declared)

        try:
            canonical = canonicalize({**params, "accessKey": self.access_key}, self.RESULT_SIGNATURE_FIELDS)
        except CanonicalizationError as e:
            logger.warning(f"MoMo notification is missing field: {e.key}")
            return VerificationResult.rejected(self.provider, "Missing required fields", **declared)

        if not verify(canonical, self.secret_key, supplied, self.HASH_ALGORITHM):
            logger.warning(f"MoMo signature mismatch for order_id={request_id}")
            return VerificationResult.rejected(self.provider, "Invalid signature", **declared)

        try:
            amount = Decimal(params["amount"])
        except (InvalidOperation, ValueError):
            amount = None
        if amount is None or not amount.is_finite():
            return VerificationResult.rejected(self.provider, "Malformed amount", **declared)

        response_code = declared["response_code"]
        return VerificationResult(
            verified=True,
            success=response_code == self.SUCCESS_CODE,
            provider=self.provider,
            amount=amount,
            response_message=params.get("message") or self.get_response_message(response_code),
            **declared,
        )

    def acknowledge(self, outcome: ReconcileOutcome) -> GatewayAcknowledgement:
        # MoMo ждет 204 на любое принятое уведомление, иначе повторяет IPN
        if outcome == ReconcileOutcome.INVALID_SIGNATURE:
            return GatewayAcknowledgement(status_code=400, body={"message": "Invalid signature"})
        return GatewayAcknowledgement(status_code=204)

    def acknowledge_error(self) -> GatewayAcknowledgement:
        return GatewayAcknowledgement(status_code=500, body={"message": "Unknown error"})
