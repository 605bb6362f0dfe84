# Overview: Pytest coverage for fiscal vendor adapters and error classification.

import pytest

from posledger.models import FiscalPrinterConfig
from posledger.services import fiscal_providers
from posledger.services.fiscal_providers import UnsupportedProviderError


def _config(provider):
    return FiscalPrinterConfig(
        provider=provider,
        endpoint_url="http://192.168.1.50:8989",
        username="cashier",
        password="secret",
    )


class TestClassifyError:
    @pytest.mark.parametrize("message", [
        "Təkrar satış: already exists",
        "DUPLICATE SALE detected",
        "Receipt already printed",
        "Document artıq mövcuddur",
    ])
    def test_duplicate_document_errors_are_not_retriable(self, message):
        assert fiscal_providers.classify_error("omnitech", message) is False

    @pytest.mark.parametrize("message", [
        "network timeout",
        "Connection refused",
        "printer out of paper",
    ])
    def test_transient_errors_are_retriable(self, message):
        assert fiscal_providers.classify_error("caspos", message) is True

    def test_unknown_provider_uses_default_patterns(self):
        assert fiscal_providers.classify_error("nosuchvendor", "already processed") is False
        assert fiscal_providers.classify_error(None, "timeout") is True

    def test_empty_message_is_retriable(self):
        assert fiscal_providers.classify_error("omnitech", "") is True


class TestRegistry:
    def test_known_providers(self):
        assert fiscal_providers.provider_names() == ["caspos", "omnitech"]

    def test_unknown_provider_raises(self):
        with pytest.raises(UnsupportedProviderError):
            fiscal_providers.get_provider("nosuchvendor")


class TestShiftRequests:
    def test_omnitech_uses_check_type_codes(self):
        provider = fiscal_providers.get_provider("omnitech")

        request = provider.shift_operation_request(_config("omnitech"), "shift_close")

        assert request["url"] == "http://192.168.1.50:8989"
        assert request["provider"] == "omnitech"
        assert request["body"]["requestData"]["checkData"]["check_type"] == 16
        assert request["body"]["username"] == "cashier"

    def test_caspos_uses_named_operations(self):
        provider = fiscal_providers.get_provider("caspos")

        request = provider.shift_operation_request(_config("caspos"), "shift_open")

        assert request["body"]["operation"] == "openShift"
        assert request["headers"]["Content-Type"] == "application/json; charset=utf-8"

    def test_unknown_shift_operation_rejected(self):
        provider = fiscal_providers.get_provider("caspos")
        with pytest.raises(UnsupportedProviderError):
            provider.shift_operation_request(_config("caspos"), "shift_reboot")


class TestParseShiftStatus:
    def test_nested_data_block(self):
        provider = fiscal_providers.get_provider("omnitech")

        is_open, opened_at = provider.parse_shift_status(
            {"code": 0, "data": {"shiftStatus": True, "shift_open_time": "14.01.2025 09:00:00"}}
        )

        assert is_open is True
        assert opened_at == "14.01.2025 09:00:00"

    def test_string_flags(self):
        provider = fiscal_providers.get_provider("caspos")

        assert provider.parse_shift_status({"shift_open": "false"}) == (False, None)
        assert provider.parse_shift_status({"shiftOpen": "1"})[0] is True

    def test_response_without_shift_state(self):
        provider = fiscal_providers.get_provider("caspos")

        assert provider.parse_shift_status({"code": 0}) == (None, None)
        assert provider.parse_shift_status(None) == (None, None)
