"""REST HTTP Client."""

from typing import Any

import httpx

from relay_tools.base import RequestEncoding
from relay_tools.exceptions import RestHTTPError, TransportError

from .request import build_form_encoded_body
from .schemas import RestResponse

BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class RestClient:
    """HTTP client for schema-described REST operations."""

    def __init__(
        self,
        timeout: float = 60.0,
        text_body_max_chars: int = 2048,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize REST client.

        Args:
            timeout: Request deadline in seconds
            text_body_max_chars: Cap on non-JSON bodies kept in responses
            transport: Optional httpx transport (tests)
        """
        self.timeout = timeout
        self.text_body_max_chars = text_body_max_chars
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        encoding: RequestEncoding = RequestEncoding.JSON,
    ) -> RestResponse:
        """Send one request.

        Args:
            method: HTTP method
            url: Fully resolved URL
            headers: Auth and caller headers
            body: Body fields; only sent for POST/PUT/PATCH/DELETE
            encoding: JSON or form-urlencoded body

        Returns:
            RestResponse with parsed body (any status)

        Raises:
            TransportError: On network/timeout errors
        """
        method = method.upper()
        form = encoding is RequestEncoding.FORM
        request_headers = {
            "Content-Type": "application/x-www-form-urlencoded" if form else "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }

        payload: dict[str, Any] = {}
        if body and method in BODY_METHODS:
            if form:
                payload["content"] = build_form_encoded_body(body)
            else:
                payload["json"] = body

        try:
            response = await self.client.request(
                method, url, headers=request_headers, **payload
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out after {self.timeout:g}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}") from e

        return RestResponse(
            status_code=response.status_code,
            body=self._parse_body(response),
            headers=dict(response.headers),
        )

    async def request_or_raise(self, *args: Any, **kwargs: Any) -> RestResponse:
        """Like request(), raising RestHTTPError for non-2xx responses."""
        response = await self.request(*args, **kwargs)
        if not response.ok:
            raise RestHTTPError(response.status_code, response.body)
        return response

    def _parse_body(self, response: httpx.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                return {"text": response.text[: self.text_body_max_chars]}
        return {"text": response.text[: self.text_body_max_chars]}

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()
