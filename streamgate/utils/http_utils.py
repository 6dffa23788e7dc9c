import logging
import re
import typing
from urllib import parse
from urllib.parse import urlencode

import httpx
from starlette.requests import Request

logger = logging.getLogger(__name__)

_ABSOLUTE_URL_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


def create_httpx_client(follow_redirects: bool = True, timeout: float = 5.0, **kwargs) -> httpx.AsyncClient:
    """
    Create an HTTPX AsyncClient for calls to external services.

    Args:
        follow_redirects (bool): Whether to follow 3xx redirects automatically.
        timeout (float): Overall timeout in seconds applied to connect, read and write.
        **kwargs: Additional AsyncClient keyword arguments (e.g. a custom transport).

    Returns:
        httpx.AsyncClient: Configured client.
    """
    return httpx.AsyncClient(follow_redirects=follow_redirects, timeout=httpx.Timeout(timeout), **kwargs)


def encode_gateway_url(
    gateway_url: str,
    endpoint: typing.Optional[str] = None,
    query_params: typing.Optional[dict] = None,
) -> str:
    """
    Encode a gateway URL with query parameters.

    Args:
        gateway_url (str): Base gateway URL.
        endpoint (str, optional): Endpoint to append to base URL.
        query_params (dict, optional): Query parameters, encoded exactly once.

    Returns:
        str: Encoded gateway URL.
    """
    if endpoint is None:
        base_url = gateway_url
    else:
        base_url = parse.urljoin(gateway_url, endpoint)

    # Normalize trailing slash
    if base_url.endswith("/"):
        base_url = base_url[:-1]

    if query_params:
        return f"{base_url}?{urlencode(query_params)}"
    return base_url


def join_object_url(base_url: str, key: str) -> str:
    """
    Join a public or edge-proxy base URL with an object key.

    Args:
        base_url (str): Base URL, with or without a trailing slash.
        key (str): Object key; path separators are kept, other reserved characters are quoted.

    Returns:
        str: The object's URL under the base.
    """
    return f"{base_url.rstrip('/')}/{parse.quote(key.lstrip('/'), safe='/')}"


def is_absolute_url(value: str) -> bool:
    """True for `scheme://...` and protocol-relative `//host/...` references."""
    return bool(_ABSOLUTE_URL_RE.match(value)) or value.startswith("//")


def get_original_scheme(request: Request) -> str:
    """
    Determine the original scheme (http or https) of the incoming request.

    Args:
        request (Request): Incoming HTTP request.

    Returns:
        str: 'http' or 'https'
    """
    forwarded_proto = request.headers.get("X-Forwarded-Proto")
    if forwarded_proto:
        return forwarded_proto

    if request.url.scheme == "https" or request.headers.get("X-Forwarded-Ssl") == "on":
        return "https"

    if (
        request.headers.get("X-Forwarded-Protocol") == "https"
        or request.headers.get("X-Url-Scheme") == "https"
    ):
        return "https"

    return "http"
