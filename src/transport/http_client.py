import asyncio
import json
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

import httpx
import structlog
from pydantic import BaseModel, Field

from ..models.errors import AdapterError, ErrorType

logger = structlog.get_logger(__name__)

MAX_REDIRECTS = 10
REDIRECT_STATUSES = (301, 302, 303, 307, 308)


class FormPayload:
    """A body that is already a form; sent URL-encoded with its own content type."""

    def __init__(self, fields: Mapping[str, Any], charset: Optional[str] = None):
        self.fields = {k: "" if v is None else str(v) for k, v in fields.items()}
        self.charset = charset

    @property
    def content_type(self) -> str:
        if self.charset:
            return f"application/x-www-form-urlencoded; charset={self.charset}"
        return "application/x-www-form-urlencoded"

    def encode(self) -> str:
        return urlencode(list(self.fields.items()))


class HTTPResponse(BaseModel):
    status: int
    status_text: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
    cookies: List[str] = Field(default_factory=list)

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400

    @property
    def location(self) -> str:
        return self.headers.get("location", "")


def cookie_name(cookie: str) -> str:
    return cookie.split("=", 1)[0].strip()


def reduce_set_cookie(header_value: str) -> str:
    """'sid=abc; Path=/; HttpOnly' -> 'sid=abc'"""
    return header_value.split(";", 1)[0].strip()


def merge_cookie_lists(current: List[str], incoming: List[str]) -> List[str]:
    merged: Dict[str, str] = {}
    for cookie in list(current) + list(incoming):
        name = cookie_name(cookie)
        if name:
            merged[name] = cookie
    return list(merged.values())


class HTTPClient:
    """
    Cookie-stateless HTTP transport for one adapter.

    Cookies are passed in explicitly on every call and handed back from
    every response; httpx's own cookie jar is never consulted.
    """

    def __init__(
        self,
        vendor: str,
        timeout_ms: int = 30000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_agent: str = "Mozilla/5.0 (compatible; emr-adapter/1.0)",
    ):
        self.vendor = str(getattr(vendor, "value", vendor))
        self.timeout_ms = timeout_ms
        self._client = httpx.AsyncClient(
            transport=transport,
            follow_redirects=False,
            timeout=httpx.Timeout(timeout_ms / 1000.0),
            headers={
                'User-Agent': user_agent,
                'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
                'Accept-Language': 'en-US,en;q=0.5',
            },
        )

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        cookies: Optional[List[str]] = None,
        timeout_ms: Optional[int] = None,
        follow_redirects: bool = True,
    ) -> HTTPResponse:
        timeout_ms = timeout_ms or self.timeout_ms
        request_headers = dict(headers or {})
        content = self._encode_body(body, request_headers)
        cookies = list(cookies or [])

        try:
            return await asyncio.wait_for(
                self._send(method.upper(), url, request_headers, content, cookies, follow_redirects, timeout_ms),
                timeout=timeout_ms / 1000.0,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("http_timeout", method=method, url=url, timeout_ms=timeout_ms)
            raise AdapterError(
                f"Request timeout after {timeout_ms}ms",
                ErrorType.NETWORK,
                self.vendor,
                e,
            ) from e
        except httpx.ConnectError as e:
            logger.warning("http_connect_error", method=method, url=url, error=str(e))
            raise AdapterError(
                f"Network error: connection failed for {url}: {e}",
                ErrorType.NETWORK,
                self.vendor,
                e,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("http_error", method=method, url=url, error=str(e))
            raise AdapterError(
                f"Network error: {type(e).__name__} for {url}: {e}",
                ErrorType.NETWORK,
                self.vendor,
                e,
            ) from e

    async def get(self, url: str, **kwargs) -> HTTPResponse:
        return await self.request(url, method="GET", **kwargs)

    async def post(self, url: str, **kwargs) -> HTTPResponse:
        return await self.request(url, method="POST", **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _encode_body(self, body: Any, headers: Dict[str, str]) -> Optional[bytes]:
        if body is None:
            return None
        if isinstance(body, FormPayload):
            self._set_header(headers, "Content-Type", body.content_type)
            return body.encode().encode("utf-8")
        if isinstance(body, bytes):
            return body
        if isinstance(body, str):
            return body.encode("utf-8")
        self._set_header(headers, "Content-Type", "application/json")
        return json.dumps(body).encode("utf-8")

    @staticmethod
    def _set_header(headers: Dict[str, str], name: str, value: str) -> None:
        for key in list(headers):
            if key.lower() == name.lower():
                del headers[key]
        headers[name] = value

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        content: Optional[bytes],
        cookies: List[str],
        follow_redirects: bool,
        timeout_ms: int,
    ) -> HTTPResponse:
        collected: List[str] = []

        for _ in range(MAX_REDIRECTS + 1):
            hop_headers = dict(headers)
            jar = merge_cookie_lists(cookies, collected)
            if jar:
                self._set_header(hop_headers, "Cookie", "; ".join(jar))

            request = self._client.build_request(
                method, url, headers=hop_headers, content=content,
                timeout=httpx.Timeout(timeout_ms / 1000.0),
            )
            response = await self._client.send(request)
            # The jar would otherwise grow across calls; session state lives in SessionManager
            self._client.cookies.clear()

            collected.extend(reduce_set_cookie(v) for v in response.headers.get_list("set-cookie"))
            logger.debug("http_response", method=method, url=url, status=response.status_code)

            location = response.headers.get("location")
            if not (follow_redirects and response.status_code in REDIRECT_STATUSES and location):
                return self._normalize(response, collected)

            url = str(response.url.join(location))
            if response.status_code == 303 or (response.status_code in (301, 302) and method not in ("GET", "HEAD")):
                method = "GET"
                content = None
                for key in list(headers):
                    if key.lower() in ("content-type", "content-length"):
                        del headers[key]

        raise httpx.TooManyRedirects(f"Exceeded {MAX_REDIRECTS} redirects", request=request)

    @staticmethod
    def _normalize(response: httpx.Response, cookies: List[str]) -> HTTPResponse:
        content_type = response.headers.get("content-type", "").lower()
        body: Any
        if "application/json" in content_type:
            try:
                body = response.json()
            except ValueError:
                body = response.text
        else:
            body = response.text

        return HTTPResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=body,
            cookies=[c for c in cookies if c],
        )
