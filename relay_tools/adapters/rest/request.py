"""Request construction for schema-described REST sources.

Pure functions: URL, body and auth headers are derived from the tool's
parameter schemas, the model's arguments and the credential bundle. Empty
values (None, "", []) never reach the wire; models routinely emit empty
strings as placeholders for optional fields.
"""

import base64
from typing import Any, Mapping
from urllib.parse import quote, urlencode

from relay_tools.base import AuthKind, Credential, ToolSource
from relay_tools.exceptions import ConfigurationError


def is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, list) and not value)


def clean_args(args: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop empty values from model-supplied arguments."""
    return {key: value for key, value in (args or {}).items() if not is_empty(value)}


def _param_location(schema: Any) -> str | None:
    return schema.get("in") if isinstance(schema, dict) else None


def _to_wire(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_to_wire(item) for item in value)
    return str(value)


def build_url(
    base_url: str,
    path: str,
    args: Mapping[str, Any],
    param_schema: dict[str, Any] | None,
) -> str:
    """Substitute path parameters and append query parameters.

    Args:
        base_url: Source base URL, e.g. "https://api.example.com/v1"
        path: Operation path template, e.g. "/refunds/{id}"
        args: Model-supplied arguments
        param_schema: Tool parameters schema; properties carry "in": "path"|"query"

    Returns:
        Fully resolved URL
    """
    resolved = path or ""
    query: list[tuple[str, str]] = []
    properties = (param_schema or {}).get("properties") or {}

    for name, schema in properties.items():
        value = args.get(name)
        if is_empty(value):
            continue
        location = _param_location(schema)
        if location == "path":
            resolved = resolved.replace(f"{{{name}}}", quote(_to_wire(value), safe=""))
        elif location == "query":
            query.append((name, _to_wire(value)))

    base = (base_url or "").rstrip("/")
    if not resolved.startswith("/"):
        resolved = f"/{resolved}"
    qs = urlencode(query)
    return f"{base}{resolved}?{qs}" if qs else f"{base}{resolved}"


def build_request_body(
    args: Mapping[str, Any],
    param_schema: dict[str, Any] | None,
    request_body_schema: dict[str, Any] | None,
) -> dict[str, Any] | None:
    """Select body fields from the arguments.

    With an explicit request-body schema only its declared keys are projected;
    otherwise every argument not consumed as a path/query parameter is sent.

    Returns:
        Body dict, or None when nothing remains
    """
    if request_body_schema:
        keys = list((request_body_schema.get("properties") or {}).keys())
        body = {key: args[key] for key in keys if key in args and not is_empty(args[key])}
    else:
        properties = (param_schema or {}).get("properties") or {}
        body = {
            key: value
            for key, value in args.items()
            if not is_empty(value) and _param_location(properties.get(key)) not in ("path", "query")
        }
    return body or None


def build_form_encoded_body(body: Mapping[str, Any]) -> str:
    """Encode a body as application/x-www-form-urlencoded with bracket notation.

    Nested objects become ``metadata[key]=v``; arrays become
    ``items[0]=a`` or ``items[0][price]=p`` for arrays of objects.
    """
    pairs: list[tuple[str, str]] = []

    def add(value: Any, key: str) -> None:
        if value is None:
            return
        if isinstance(value, dict):
            for child_key, child in value.items():
                add(child, f"{key}[{child_key}]")
        elif isinstance(value, list):
            for index, item in enumerate(value):
                add(item, f"{key}[{index}]")
        else:
            pairs.append((key, _to_wire(value)))

    for key, value in body.items():
        add(value, key)
    return urlencode(pairs)


def build_auth_headers(
    source: ToolSource,
    credentials: Credential | Mapping[str, Any] | None,
) -> dict[str, str]:
    """Build auth headers from the source's auth kind and a credential bundle.

    Raises:
        ConfigurationError: A field required by the auth kind is missing
    """
    if isinstance(credentials, Credential):
        creds: Mapping[str, Any] = credentials.secrets
    else:
        creds = credentials or {}

    auth_type = source.auth_type
    if auth_type is AuthKind.BEARER:
        if not creds.get("token"):
            raise ConfigurationError(
                f'This API requires a Bearer token. Add your credentials for "{source.name}".'
            )
        return {"Authorization": f"Bearer {creds['token']}"}

    if auth_type is AuthKind.API_KEY:
        if not creds.get("api_key"):
            raise ConfigurationError(
                f'This API requires an API key. Add your credentials for "{source.name}".'
            )
        return {creds.get("header_name") or "X-API-Key": str(creds["api_key"])}

    if auth_type is AuthKind.BASIC:
        if not creds.get("username"):
            raise ConfigurationError(
                f'This API requires username/password. Add your credentials for "{source.name}".'
            )
        raw = f"{creds['username']}:{creds.get('password') or ''}".encode("utf-8")
        return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}

    if auth_type is AuthKind.HEADER:
        if not (creds.get("header_name") and creds.get("header_value")):
            raise ConfigurationError(
                f'This API requires a custom header. Add your credentials for "{source.name}".'
            )
        return {str(creds["header_name"]): str(creds["header_value"])}

    if auth_type is AuthKind.PASSTHROUGH and creds.get("token"):
        return {"Authorization": f"Bearer {creds['token']}"}

    return {}
