"""Orders API."""
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.exceptions import InvalidCheckoutData
from storefront.database import get_db
from storefront.models.order import Order
from storefront.services.order_service import OrderService

router = APIRouter()


class CreateOrderRequest(BaseModel):
    """
    Запрос на создание заказа.

    Скидка по ваучеру и стоимость доставки уже посчитаны на стороне корзины.
    """

    order_code: str | None = None
    total_amount: Decimal = Field(ge=0)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_fee: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = "VND"
    customer_id: str | None = None
    customer_email: str | None = None
    customer_name: str | None = None


class OrderResponse(BaseModel):
    """Ответ с информацией о заказе и оплате."""

    order_code: str
    total_amount: float
    discount_amount: float
    shipping_fee: float
    final_amount: float
    currency: str
    status: str
    payment_status: str
    payment_method: str | None
    payment_details: dict | None
    created_at: str
    updated_at: str


def _to_response(order: Order) -> OrderResponse:
    return OrderResponse(
        order_code=order.order_code,
        total_amount=float(order.total_amount),
        discount_amount=float(order.discount_amount),
        shipping_fee=float(order.shipping_fee),
        final_amount=float(order.final_amount),
        currency=order.currency,
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        payment_details=order.payment_details,
        created_at=order.created_at.isoformat(),
        updated_at=order.updated_at.isoformat(),
    )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    db: AsyncSession = Depends(get_db),
):
    """Создать заказ в статусе created/unpaid."""
    service = OrderService(db)
    try:
        order = await service.create_order(
            total_amount=request.total_amount,
            discount_amount=request.discount_amount,
            shipping_fee=request.shipping_fee,
            currency=request.currency,
            customer_id=request.customer_id,
            customer_email=request.customer_email,
            customer_name=request.customer_name,
            order_code=request.order_code,
        )
    except InvalidCheckoutData as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _to_response(order)


@router.get("/{order_code}", response_model=OrderResponse)
async def get_order(
    order_code: str,
    db: AsyncSession = Depends(get_db),
):
    """Получить заказ по коду (страница результата оплаты опрашивает статус)."""
    service = OrderService(db)
    order = await service.get_by_code(order_code)
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Заказ не найден",
        )
    return _to_response(order)
