"""REST adapter: request construction and HTTP client for schema-described APIs."""

from .client import RestClient
from .request import (
    build_auth_headers,
    build_form_encoded_body,
    build_request_body,
    build_url,
    clean_args,
)
from .schemas import RestResponse
from .vendors import StripeAdapter, VendorAdapter, VendorRegistry, default_vendors

__all__ = [
    "RestClient",
    "RestResponse",
    "StripeAdapter",
    "VendorAdapter",
    "VendorRegistry",
    "build_auth_headers",
    "build_form_encoded_body",
    "build_request_body",
    "build_url",
    "clean_args",
    "default_vendors",
]
