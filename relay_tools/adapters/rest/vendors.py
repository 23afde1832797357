"""Vendor adapters for REST sources.

Most schema-described APIs work with the generic request builders. A vendor
adapter covers the quirks of one API family: a required body encoding, extra
headers, and argument or response transforms. Adapters are matched by the
source's base URL; sources without a match use the generic path unchanged.
"""

import re
from typing import Any

from relay_tools.base import Credential, RequestEncoding, ToolDescriptor, ToolSource


class VendorAdapter:
    """Hooks applied around one REST call. Every hook defaults to a pass-through."""

    name = "generic"
    url_pattern: re.Pattern | None = None
    request_encoding: RequestEncoding | None = None

    def matches(self, source: ToolSource) -> bool:
        if self.url_pattern is None or not source.base_url:
            return False
        return self.url_pattern.search(source.base_url) is not None

    def before_request(
        self, args: dict[str, Any], tool: ToolDescriptor, source: ToolSource
    ) -> dict[str, Any]:
        return args

    def after_response(self, body: Any, tool: ToolDescriptor, source: ToolSource) -> Any:
        return body

    def headers(self, source: ToolSource, credentials: Credential | None) -> dict[str, str]:
        return {}


class StripeAdapter(VendorAdapter):
    """Stripe: form-encoded bodies, optional Connect account and API version headers."""

    name = "stripe"
    url_pattern = re.compile(r"stripe\.com")
    request_encoding = RequestEncoding.FORM

    def headers(self, source: ToolSource, credentials: Credential | None) -> dict[str, str]:
        secrets = credentials.secrets if credentials else {}
        headers = {}
        if secrets.get("stripe_account"):
            headers["Stripe-Account"] = str(secrets["stripe_account"])
        if secrets.get("stripe_version"):
            headers["Stripe-Version"] = str(secrets["stripe_version"])
        return headers


class VendorRegistry:
    """Ordered set of vendor adapters; the first match wins."""

    def __init__(self, adapters: list[VendorAdapter] | None = None):
        self._adapters: list[VendorAdapter] = []
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: VendorAdapter) -> None:
        self._adapters.append(adapter)

    def get(self, source: ToolSource) -> VendorAdapter | None:
        for adapter in self._adapters:
            if adapter.matches(source):
                return adapter
        return None

    def encoding_for(self, source: ToolSource) -> RequestEncoding:
        """Body encoding: an explicit form flag on the source, else the adapter's, else JSON."""
        if source.request_encoding is RequestEncoding.FORM:
            return RequestEncoding.FORM
        adapter = self.get(source)
        if adapter is not None and adapter.request_encoding is not None:
            return adapter.request_encoding
        return source.request_encoding

    def keys(self) -> list[str]:
        return [adapter.name for adapter in self._adapters]


def default_vendors() -> VendorRegistry:
    return VendorRegistry([StripeAdapter()])
