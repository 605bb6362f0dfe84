# Overview: Vendor adapters for fiscal printers; error classification and shift request skeletons.

"""
Fiscal Provider Adapters

WHY: Each fiscal printer vendor speaks its own protocol and reports its own
error texts. The core never talks to a device; the bridge does. What the
core needs from a vendor is small:
- Which device errors must never be retried (a retry would print twice)
- The request skeleton the bridge forwards for shift operations
- How to read shift state out of a device response

DESIGN:
- One class per vendor, registered by name
- Retry ceiling and backoff base may be overridden per vendor; None means
  "use the application config"
"""

from __future__ import annotations

from typing import Optional


class UnsupportedProviderError(Exception):
    """Raised when a fiscal provider name has no registered adapter."""
    pass


# Substrings (case-insensitive) meaning the device already holds this document.
# Retrying would fiscalize the same sale twice.
DEFAULT_NON_RETRIABLE_PATTERNS = (
    "duplicate sale",
    "already printed",
    "already exists",
    "already processed",
    "təkrar satış",
    "artıq mövcuddur",
)


class FiscalProvider:
    name = ""
    content_type = "application/json"
    non_retriable_patterns: tuple = DEFAULT_NON_RETRIABLE_PATTERNS

    # Per-vendor overrides of FISCAL_MAX_RETRIES / FISCAL_RETRY_BASE_SECONDS
    max_retries: Optional[int] = None
    retry_base_seconds: Optional[int] = None

    # Operation name -> vendor command
    shift_commands: dict = {}

    def is_non_retriable(self, message: str | None) -> bool:
        if not message:
            return False
        lowered = message.lower()
        return any(pattern in lowered for pattern in self.non_retriable_patterns)

    def classify_error(self, message: str | None) -> bool:
        """Return True when the failure may be retried."""
        return not self.is_non_retriable(message)

    def shift_operation_request(self, config, operation: str) -> dict:
        """Opaque request the bridge forwards to the device."""
        raise NotImplementedError

    def _envelope(self, config, body: dict) -> dict:
        return {
            "url": config.endpoint_url,
            "provider": self.name,
            "headers": {
                "Accept": "application/json",
                "Content-Type": self.content_type,
            },
            "body": body,
        }

    def document_request(self, config, operation_type: str, payload: dict) -> dict:
        """Sale / return request skeleton; the bridge renders the vendor document."""
        return self._envelope(config, {"operation": operation_type, "data": payload})

    def parse_shift_status(self, response: dict | None) -> tuple[Optional[bool], Optional[str]]:
        """
        Extract (is_open, opened_at_raw) from a device response.

        is_open is None when the response carries no shift state. opened_at_raw
        is the device's own local-time string, unparsed.
        """
        if not isinstance(response, dict):
            return None, None
        data = response.get("data")
        if not isinstance(data, dict):
            data = response

        is_open = None
        for field in ("shiftStatus", "shift_open", "shiftOpen"):
            if field in data and data[field] is not None:
                is_open = _as_bool(data[field])
                break

        opened_at = None
        for field in ("shift_open_time", "shiftOpenTime", "openTime"):
            if data.get(field):
                opened_at = str(data[field])
                break

        return is_open, opened_at

    def _command_for(self, operation: str):
        try:
            return self.shift_commands[operation]
        except KeyError:
            raise UnsupportedProviderError(f"{self.name} does not support shift operation {operation}")


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "open", "opened", "yes")
    return bool(value)


class CasposProvider(FiscalProvider):
    """Caspos: named operations."""
    name = "caspos"
    shift_commands = {
        "shift_status": "getShiftStatus",
        "shift_open": "openShift",
        "shift_close": "closeShift",
        "shift_x_report": "getXReport",
    }
    content_type = "application/json; charset=utf-8"

    def shift_operation_request(self, config, operation: str) -> dict:
        return self._envelope(config, {
            "operation": self._command_for(operation),
            "username": config.username,
            "password": config.password,
        })


class OmnitechProvider(FiscalProvider):
    """Omnitech: numeric check_type codes; the bridge logs in with the credentials first."""
    name = "omnitech"
    shift_commands = {
        "shift_status": 14,
        "shift_open": 15,
        "shift_close": 16,
        "shift_x_report": 17,
    }

    def shift_operation_request(self, config, operation: str) -> dict:
        # access_token is injected by the bridge after it logs in
        return self._envelope(config, {
            "requestData": {
                "checkData": {"check_type": self._command_for(operation)},
            },
            "username": config.username,
            "password": config.password,
        })


_PROVIDERS: dict[str, FiscalProvider] = {}


def register_provider(provider: FiscalProvider) -> FiscalProvider:
    _PROVIDERS[provider.name] = provider
    return provider


register_provider(CasposProvider())
register_provider(OmnitechProvider())


def get_provider(name: str | None) -> FiscalProvider:
    if not name or name not in _PROVIDERS:
        raise UnsupportedProviderError(f"Unsupported fiscal provider: {name}")
    return _PROVIDERS[name]


def provider_names() -> list[str]:
    return sorted(_PROVIDERS)


def classify_error(provider_name: str | None, message: str | None) -> bool:
    """
    Return True when a failure reported by the bridge may be retried.

    Unknown providers fall back to the default patterns so a misconfigured
    tenant can never cause a duplicate print.
    """
    provider = _PROVIDERS.get(provider_name or "")
    if provider is None:
        return FiscalProvider().classify_error(message)
    return provider.classify_error(message)
