"""Payments API."""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel

from storefront.config import settings
from storefront.core.dependencies import get_client_ip, get_gateways, get_payment_service
from storefront.core.exceptions import (
    InvalidAmount,
    InvalidCheckoutData,
    OrderNotFoundError,
    PaymentGatewayError,
)
from storefront.schemas.payment import (
    ClientContext,
    DeliveryChannel,
    PaymentProvider,
    ReconcileOutcome,
)
from storefront.services.gateways import GatewayRegistry
from storefront.services.payment_service import PaymentService
from storefront.services.reconciliation_service import ReconcileResult

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckoutRequest(BaseModel):
    """Запрос на начало оплаты."""

    order_code: str
    bank_code: str | None = None  # только для VNPay
    locale: str | None = None


class CheckoutResponse(BaseModel):
    """Ответ с URL платежного шлюза."""

    provider: str
    redirect_url: str
    request_id: str
    expires_at: str


@router.post("/{provider}/checkout", response_model=CheckoutResponse)
async def create_checkout(
    provider: str,
    body: CheckoutRequest,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Создать платежную сессию и получить URL для перехода на шлюз.

    Заказ должен существовать и быть неоплаченным.
    """
    context = ClientContext(
        ip_address=get_client_ip(request),
        bank_code=body.bank_code,
        locale=body.locale,
    )
    try:
        result = await service.start_checkout(body.order_code, provider, context)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (InvalidCheckoutData, InvalidAmount) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PaymentGatewayError as e:
        logger.error(f"Failed to create {provider} payment for order {body.order_code}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return CheckoutResponse(
        provider=result.session.provider,
        redirect_url=result.redirect_url,
        request_id=result.session.request_id,
        expires_at=result.session.expires_at.isoformat(),
    )


def _frontend_redirect(page: str, order_code: str | None, outcome: str, message: str) -> RedirectResponse:
    query = urlencode({"orderCode": order_code or "", "status": outcome, "message": message})
    return RedirectResponse(f"{settings.frontend_url}{page}?{query}", status_code=status.HTTP_302_FOUND)


def _result_redirect(result: ReconcileResult) -> RedirectResponse:
    """Страница результата для плательщика. На success попадает только оплаченный заказ."""
    if result.outcome == ReconcileOutcome.INVALID_SIGNATURE:
        page = "/checkout/error"
    elif result.is_paid:
        page = "/checkout/success"
    else:
        page = "/checkout/fail"
    return _frontend_redirect(page, result.order_code, result.outcome.value, result.message)


async def _handle_redirect(provider: PaymentProvider, params: dict, service: PaymentService) -> RedirectResponse:
    try:
        result = await service.handle_notification(provider.value, params, DeliveryChannel.REDIRECT)
    except Exception as e:
        logger.error(f"Error processing {provider.value} redirect: {e}", exc_info=True)
        return _frontend_redirect("/checkout/error", None, "error", "Payment processing error")
    return _result_redirect(result)


async def _handle_ipn(
    provider: PaymentProvider,
    params: dict,
    service: PaymentService,
    gateways: GatewayRegistry,
) -> Response:
    adapter = gateways.resolve(provider.value)
    try:
        result = await service.handle_notification(provider.value, params, DeliveryChannel.SERVER_PUSH)
        ack = adapter.acknowledge(result.outcome)
    except Exception as e:
        logger.error(f"Error processing {provider.value} IPN: {e}", exc_info=True)
        ack = adapter.acknowledge_error()

    if ack.body is None:
        return Response(status_code=ack.status_code)
    return JSONResponse(status_code=ack.status_code, content=ack.body)


async def _read_json_body(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Payment notification body is not valid JSON")
        return {}
    return payload if isinstance(payload, dict) else {}


@router.get("/vnpay/return")
async def vnpay_return(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    """Возврат плательщика с VNPay (браузерный канал)."""
    return await _handle_redirect(PaymentProvider.VNPAY, dict(request.query_params), service)


@router.api_route("/vnpay/ipn", methods=["GET", "POST"])
async def vnpay_ipn(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    gateways: GatewayRegistry = Depends(get_gateways),
):
    """IPN от VNPay. Параметры приходят в query string (GET) или JSON (POST)."""
    params = dict(request.query_params)
    if request.method == "POST" and not params:
        params = await _read_json_body(request)
    return await _handle_ipn(PaymentProvider.VNPAY, params, service, gateways)


@router.get("/vnpay/methods")
async def vnpay_methods(gateways: GatewayRegistry = Depends(get_gateways)):
    """Способы оплаты и банки, доступные в VNPay."""
    return gateways[PaymentProvider.VNPAY.value].get_payment_methods()


@router.get("/momo/return")
async def momo_return(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    """Возврат плательщика с MoMo (браузерный канал)."""
    return await _handle_redirect(PaymentProvider.MOMO, dict(request.query_params), service)


@router.post("/momo/ipn")
async def momo_ipn(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    gateways: GatewayRegistry = Depends(get_gateways),
):
    """IPN от MoMo (JSON). Любое доверенное уведомление подтверждается 204."""
    payload = await _read_json_body(request)
    return await _handle_ipn(PaymentProvider.MOMO, payload, service, gateways)
