"""Тесты выбора адаптера при проверке уведомлений."""
import pytest

from storefront.core.exceptions import InvalidCheckoutData, UnsupportedProvider
from storefront.services.gateways import GatewayRegistry, build_gateway_registry
from storefront.services.gateways.base import build_request_id, order_code_from_request_id
from storefront.services.notification_verifier import NotificationVerifier


class TestNotificationVerifier:
    def test_dispatches_to_vnpay(self, gateways, vnpay_notification):
        result = NotificationVerifier(gateways).verify("vnpay", vnpay_notification())

        assert result.provider == "vnpay"
        assert result.verified is True

    def test_dispatches_to_momo(self, gateways, momo_notification):
        result = NotificationVerifier(gateways).verify("momo", momo_notification())

        assert result.provider == "momo"
        assert result.verified is True

    def test_payload_of_other_provider_is_not_trusted(self, gateways, momo_notification):
        result = NotificationVerifier(gateways).verify("vnpay", momo_notification())

        assert result.verified is False

    def test_unknown_provider(self, gateways):
        with pytest.raises(UnsupportedProvider) as exc_info:
            NotificationVerifier(gateways).verify("paypal", {})

        assert isinstance(exc_info.value, InvalidCheckoutData)
        assert exc_info.value.provider == "paypal"


class TestGatewayRegistry:
    def test_mapping_interface(self, gateways):
        assert set(gateways) == {"vnpay", "momo"}
        assert len(gateways) == 2
        assert gateways["momo"].provider == "momo"

    def test_built_from_settings(self):
        registry = build_gateway_registry()

        assert isinstance(registry, GatewayRegistry)
        assert registry.resolve("vnpay").return_url.endswith("/api/v1/payments/vnpay/return")
        assert registry.resolve("momo").ipn_url.endswith("/api/v1/payments/momo/ipn")


class TestRequestId:
    def test_round_trip(self):
        assert order_code_from_request_id(build_request_id("ORD-1001", 1700000000000)) == "ORD-1001"

    def test_order_code_with_separator(self):
        assert order_code_from_request_id("ORD_2024_0001_1700000000000") == "ORD_2024_0001"

    @pytest.mark.parametrize("value", ["ORD-1001", "ORD-1001_abc"])
    def test_unsuffixed_value_is_returned_as_is(self, value):
        assert order_code_from_request_id(value) == value

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty(self, value):
        assert order_code_from_request_id(value) is None
