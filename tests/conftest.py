"""
Общие фикстуры тестов.

Каждый тест получает свою SQLite базу в tmp_path (файловую, чтобы несколько
сессий видели одни и те же данные), адаптеры шлюзов с тестовыми ключами и
HTTP API MoMo, замененный на httpx.MockTransport.
"""
import json
import os
from decimal import Decimal
from urllib.parse import quote_plus

# Переменные окружения должны быть выставлены до импорта storefront.config
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./storefront_test.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("BACKEND_URL", "http://testserver")
os.environ.setdefault("FRONTEND_URL", "http://shop.test")
os.environ.setdefault("VNPAY_TMN_CODE", "TESTTMN1")
os.environ.setdefault("VNPAY_SECRET_KEY", "VNPAYTESTSECRETKEY0123456789ABCD")
os.environ.setdefault("MOMO_PARTNER_CODE", "MOMOTEST0001")
os.environ.setdefault("MOMO_ACCESS_KEY", "momo-test-access-key")
os.environ.setdefault("MOMO_SECRET_KEY", "momo-test-secret-key")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from storefront.core.signature import canonicalize, sign
from storefront.core.task_queue import TaskQueue
from storefront.database import Base
from storefront.models import Order  # noqa: F401  регистрирует таблицы
from storefront.services.gateways import GatewayRegistry, MoMoGateway, VNPayGateway
from storefront.services.order_service import OrderService

VNPAY_TMN_CODE = "TESTTMN1"
VNPAY_SECRET = "VNPAYTESTSECRETKEY0123456789ABCD"
VNPAY_PAYMENT_URL = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
MOMO_PARTNER_CODE = "MOMOTEST0001"
MOMO_ACCESS_KEY = "momo-test-access-key"
MOMO_SECRET = "momo-test-secret-key"
MOMO_ENDPOINT = "https://test-payment.momo.vn/v2/gateway/api/create"
MOMO_PAY_URL = "https://test-payment.momo.vn/v2/gateway/pay?t=TOKEN123"

MOMO_RESULT_FIELDS = (
    "accessKey", "amount", "extraData", "message", "orderId", "orderInfo", "orderType",
    "partnerCode", "payType", "requestId", "responseTime", "resultCode", "transId",
)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Движок на файловой SQLite базе теста."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def order_factory(session_factory):
    """Создать заказ в отдельной сессии (как это делает сервис заказов)."""

    async def _create(
        order_code: str | None = "ORD-1001",
        total_amount: Decimal = Decimal("150000"),
        discount_amount: Decimal = Decimal("0"),
        shipping_fee: Decimal = Decimal("0"),
        customer_id: str | None = "customer-1",
        customer_email: str | None = "buyer@example.com",
    ):
        async with session_factory() as session:
            return await OrderService(session).create_order(
                total_amount=total_amount,
                discount_amount=discount_amount,
                shipping_fee=shipping_fee,
                customer_id=customer_id,
                customer_email=customer_email,
                customer_name="Test Buyer",
                order_code=order_code,
            )

    return _create


@pytest.fixture
def load_order(session_factory):
    """Прочитать заказ из базы заново."""

    async def _load(order_code: str):
        async with session_factory() as session:
            return await OrderService(session).get_by_code(order_code)

    return _load


# ============================================================================
# Gateway Fixtures
# ============================================================================

class MoMoApi:
    """Поддельный API создания платежа MoMo: запоминает запросы, отвечает заданным JSON."""

    def __init__(self):
        self.requests: list[dict] = []
        self.status_code = 200
        self.response: dict | str = {
            "partnerCode": MOMO_PARTNER_CODE,
            "resultCode": 0,
            "message": "Successful.",
            "payUrl": MOMO_PAY_URL,
        }
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.error is not None:
            raise self.error
        self.requests.append(json.loads(request.content))
        if isinstance(self.response, str):
            return httpx.Response(self.status_code, text=self.response)
        return httpx.Response(self.status_code, json=self.response)


@pytest.fixture
def momo_api():
    return MoMoApi()


@pytest.fixture
def vnpay_gateway():
    return VNPayGateway(
        tmn_code=VNPAY_TMN_CODE,
        secret_key=VNPAY_SECRET,
        payment_url=VNPAY_PAYMENT_URL,
        return_url="http://testserver/api/v1/payments/vnpay/return",
    )


@pytest.fixture
def momo_gateway(momo_api):
    return MoMoGateway(
        partner_code=MOMO_PARTNER_CODE,
        access_key=MOMO_ACCESS_KEY,
        secret_key=MOMO_SECRET,
        endpoint=MOMO_ENDPOINT,
        redirect_url="http://testserver/api/v1/payments/momo/return",
        ipn_url="http://testserver/api/v1/payments/momo/ipn",
        transport=httpx.MockTransport(momo_api.handler),
    )


@pytest.fixture
def gateways(vnpay_gateway, momo_gateway):
    return GatewayRegistry([vnpay_gateway, momo_gateway])


@pytest.fixture
def task_queue():
    """Очередь без пауз между повторами."""
    return TaskQueue(max_attempts=3, backoff_base=0, backoff_max=0)


# ============================================================================
# Signed notification payloads
# ============================================================================

def sign_vnpay(params: dict, secret: str = VNPAY_SECRET) -> dict:
    """Подписать параметры так, как это делает VNPay."""
    keys = sorted(k for k in params if k.startswith("vnp_") and k not in ("vnp_SecureHash", "vnp_SecureHashType"))
    canonical = "&".join(f"{k}={quote_plus(str(params[k]))}" for k in keys if str(params[k]) != "")
    return {**params, "vnp_SecureHash": sign(canonical, secret, "sha512")}


def sign_momo(params: dict, access_key: str = MOMO_ACCESS_KEY, secret: str = MOMO_SECRET) -> dict:
    """Подписать результат оплаты так, как это делает MoMo."""
    canonical = canonicalize({**params, "accessKey": access_key}, MOMO_RESULT_FIELDS)
    return {**params, "signature": sign(canonical, secret, "sha256")}


@pytest.fixture
def vnpay_notification():
    """Фабрика подписанных уведомлений VNPay (return URL / IPN)."""

    def _build(
        request_id: str = "ORD-1001_1700000000000",
        amount: Decimal = Decimal("150000"),
        response_code: str = "00",
        transaction_status: str = "00",
        transaction_no: str = "14000001",
    ) -> dict:
        params = {
            "vnp_Amount": str(int(amount * 100)),
            "vnp_BankCode": "NCB",
            "vnp_BankTranNo": "VNP14000001",
            "vnp_CardType": "ATM",
            "vnp_OrderInfo": f"Payment for order {request_id}",
            "vnp_PayDate": "20240101120000",
            "vnp_ResponseCode": response_code,
            "vnp_TmnCode": VNPAY_TMN_CODE,
            "vnp_TransactionNo": transaction_no,
            "vnp_TransactionStatus": transaction_status,
            "vnp_TxnRef": request_id,
        }
        return sign_vnpay(params)

    return _build


@pytest.fixture
def momo_notification():
    """Фабрика подписанных уведомлений MoMo (redirect / IPN)."""

    def _build(
        request_id: str = "ORD-1001_1700000000000",
        amount: Decimal | int = 150000,
        result_code: int = 0,
        trans_id: int = 2900000001,
        message: str = "Successful.",
    ) -> dict:
        params = {
            "partnerCode": MOMO_PARTNER_CODE,
            "orderId": request_id,
            "requestId": request_id,
            "amount": int(amount),
            "orderInfo": f"Payment for order {request_id}",
            "orderType": "momo_wallet",
            "transId": trans_id,
            "resultCode": result_code,
            "message": message,
            "payType": "qr",
            "responseTime": 1700000000000,
            "extraData": "",
        }
        return sign_momo(params)

    return _build
