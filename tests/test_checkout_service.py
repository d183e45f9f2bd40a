"""Тесты создания платежной сессии."""
import asyncio
import logging
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from storefront.core.exceptions import (
    InvalidAmount,
    InvalidCheckoutData,
    OrderNotFoundError,
    PaymentGatewayError,
    UnsupportedProvider,
)
from storefront.models.order import Order, OrderStatus, PaymentStatus
from storefront.models.payment import PaymentSession
from storefront.schemas.payment import ClientContext
from storefront.services import checkout_service
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import OrderService
from storefront.services.payment_service import PaymentService

from tests.conftest import MOMO_PAY_URL, VNPAY_PAYMENT_URL


async def count_sessions(db) -> int:
    result = await db.execute(select(func.count()).select_from(PaymentSession))
    return result.scalar_one()


class TestCreateSession:
    async def test_vnpay_session(self, db, gateways, order_factory, load_order):
        await order_factory("ORD-1001", total_amount=Decimal("150000"))
        order = await OrderService(db).get_by_code("ORD-1001")

        result = await CheckoutService(db, gateways).create_session(
            order, "vnpay", ClientContext(ip_address="10.0.0.1")
        )

        session = result.session
        assert session.order_code == "ORD-1001"
        assert session.provider == "vnpay"
        assert session.request_id.startswith("ORD-1001_")
        assert session.amount == Decimal("150000")
        assert session.client_ip == "10.0.0.1"
        assert session.expires_at - session.created_at == timedelta(minutes=15)
        assert result.redirect_url.startswith(VNPAY_PAYMENT_URL)
        assert f"vnp_TxnRef={session.request_id}" in result.redirect_url

        stored = await load_order("ORD-1001")
        assert stored.status == OrderStatus.PENDING_PAYMENT.value
        assert stored.payment_status == PaymentStatus.UNPAID.value
        assert stored.payment_method == "vnpay"

    async def test_momo_session(self, db, gateways, order_factory, momo_api):
        await order_factory("ORD-1001")
        order = await OrderService(db).get_by_code("ORD-1001")

        result = await CheckoutService(db, gateways).create_session(order, "momo", ClientContext())

        assert result.redirect_url == MOMO_PAY_URL
        assert momo_api.requests[0]["orderId"] == result.session.request_id

    async def test_final_amount_includes_discount_and_shipping(self, db, gateways, order_factory):
        await order_factory(
            "ORD-1003",
            total_amount=Decimal("200000"),
            discount_amount=Decimal("70000"),
            shipping_fee=Decimal("20000"),
        )
        order = await OrderService(db).get_by_code("ORD-1003")

        result = await CheckoutService(db, gateways).create_session(order, "vnpay", ClientContext())

        assert result.session.amount == Decimal("150000")
        assert "vnp_Amount=15000000" in result.redirect_url

    async def test_each_attempt_gets_fresh_request_id(self, db, gateways, order_factory):
        await order_factory("ORD-1001")
        service = CheckoutService(db, gateways)
        order = await OrderService(db).get_by_code("ORD-1001")

        first = await service.create_session(order, "vnpay", ClientContext())
        second = await service.create_session(order, "momo", ClientContext())
        third = await service.create_session(order, "vnpay", ClientContext())

        request_ids = {first.session.request_id, second.session.request_id, third.session.request_id}
        assert len(request_ids) == 3
        assert await count_sessions(db) == 3

    async def test_custom_ttl(self, db, gateways, order_factory):
        await order_factory("ORD-1001")
        order = await OrderService(db).get_by_code("ORD-1001")

        result = await CheckoutService(db, gateways, session_ttl=timedelta(minutes=5)).create_session(
            order, "vnpay", ClientContext()
        )

        assert result.session.expires_at - result.session.created_at == timedelta(minutes=5)


FROZEN_MS = 1_700_000_000_000


class TestRequestIdCollisions:
    @pytest.fixture(autouse=True)
    def frozen_clock(self, monkeypatch):
        monkeypatch.setattr(checkout_service, "_now_ms", lambda: FROZEN_MS)

    async def test_same_millisecond_gets_next_suffix(self, db, gateways, order_factory):
        await order_factory("ORD-1001")
        service = CheckoutService(db, gateways)
        order = await OrderService(db).get_by_code("ORD-1001")

        first = await service.create_session(order, "vnpay", ClientContext())
        second = await service.create_session(order, "vnpay", ClientContext())

        assert first.session.request_id == f"ORD-1001_{FROZEN_MS}"
        assert second.session.request_id == f"ORD-1001_{FROZEN_MS + 1}"

    async def test_concurrent_checkouts_do_not_collide(self, session_factory, gateways, order_factory, load_order):
        await order_factory("ORD-1001")

        async def checkout():
            async with session_factory() as session:
                order = await OrderService(session).get_by_code("ORD-1001")
                result = await CheckoutService(session, gateways).create_session(order, "vnpay", ClientContext())
                return result.session.request_id

        request_ids = await asyncio.gather(checkout(), checkout())

        assert sorted(request_ids) == [f"ORD-1001_{FROZEN_MS}", f"ORD-1001_{FROZEN_MS + 1}"]
        async with session_factory() as session:
            assert await count_sessions(session) == 2
        assert (await load_order("ORD-1001")).status == OrderStatus.PENDING_PAYMENT.value

    async def test_gives_up_after_bounded_attempts(self, db, gateways, order_factory, monkeypatch, caplog):
        await order_factory("ORD-1001")
        service = CheckoutService(db, gateways)
        order = await OrderService(db).get_by_code("ORD-1001")
        taken = (await service.create_session(order, "vnpay", ClientContext())).session.request_id

        async def always_taken(order_code):
            return taken

        monkeypatch.setattr(service, "_next_request_id", always_taken)

        with caplog.at_level(logging.WARNING, logger=checkout_service.__name__):
            with pytest.raises(InvalidCheckoutData):
                await service.create_session(order, "vnpay", ClientContext())

        assert await count_sessions(db) == 1
        assert caplog.text.count("already exists") == checkout_service.MAX_REQUEST_ID_ATTEMPTS


class TestCreateSessionErrors:
    async def test_order_required(self, db, gateways):
        with pytest.raises(InvalidCheckoutData):
            await CheckoutService(db, gateways).create_session(None, "vnpay", ClientContext())

    async def test_provider_required(self, db, gateways, order_factory):
        await order_factory("ORD-1001")
        order = await OrderService(db).get_by_code("ORD-1001")

        with pytest.raises(InvalidCheckoutData):
            await CheckoutService(db, gateways).create_session(order, "", ClientContext())

    async def test_unknown_provider(self, db, gateways, order_factory):
        await order_factory("ORD-1001")
        order = await OrderService(db).get_by_code("ORD-1001")

        with pytest.raises(UnsupportedProvider):
            await CheckoutService(db, gateways).create_session(order, "paypal", ClientContext())

    @pytest.mark.parametrize(
        "total,discount",
        [(Decimal("0"), Decimal("0")), (Decimal("100000"), Decimal("120000"))],
    )
    async def test_non_positive_amount(self, db, gateways, order_factory, total, discount):
        await order_factory("ORD-1001", total_amount=total, discount_amount=discount)
        order = await OrderService(db).get_by_code("ORD-1001")

        with pytest.raises(InvalidAmount):
            await CheckoutService(db, gateways).create_session(order, "vnpay", ClientContext())
        assert await count_sessions(db) == 0

    @pytest.mark.parametrize("payment_status", [PaymentStatus.PAID.value, PaymentStatus.FAILED.value])
    async def test_reconciled_order_cannot_be_paid_again(self, db, gateways, order_factory, payment_status):
        await order_factory("ORD-1001")
        await db.execute(update(Order).where(Order.order_code == "ORD-1001").values(payment_status=payment_status))
        await db.commit()
        order = await OrderService(db).get_by_code("ORD-1001")

        with pytest.raises(InvalidCheckoutData):
            await CheckoutService(db, gateways).create_session(order, "vnpay", ClientContext())

    async def test_cancelled_order(self, db, gateways, order_factory):
        await order_factory("ORD-1001")
        await db.execute(
            update(Order).where(Order.order_code == "ORD-1001").values(status=OrderStatus.CANCELLED.value)
        )
        await db.commit()
        order = await OrderService(db).get_by_code("ORD-1001")

        with pytest.raises(InvalidCheckoutData):
            await CheckoutService(db, gateways).create_session(order, "vnpay", ClientContext())

    async def test_gateway_failure_rolls_back(self, db, gateways, order_factory, momo_api, load_order):
        await order_factory("ORD-1001")
        momo_api.response = {"resultCode": 99, "message": "Unknown error"}
        order = await OrderService(db).get_by_code("ORD-1001")

        with pytest.raises(PaymentGatewayError):
            await CheckoutService(db, gateways).create_session(order, "momo", ClientContext())

        assert await count_sessions(db) == 0
        stored = await load_order("ORD-1001")
        assert stored.status == OrderStatus.CREATED.value
        assert stored.payment_method is None


class TestStartCheckout:
    async def test_by_order_code(self, db, gateways, order_factory):
        await order_factory("ORD-1001")

        result = await PaymentService(db, gateways).start_checkout("ORD-1001", "vnpay", ClientContext())

        assert result.session.order_code == "ORD-1001"

    async def test_unknown_order(self, db, gateways):
        with pytest.raises(OrderNotFoundError):
            await PaymentService(db, gateways).start_checkout("ORD-404", "vnpay", ClientContext())

    async def test_order_code_required(self, db, gateways):
        with pytest.raises(InvalidCheckoutData):
            await PaymentService(db, gateways).start_checkout("", "vnpay", ClientContext())
