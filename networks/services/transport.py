"""
HTTP transport for affiliate network adapters.

One ``NetworkHttpClient`` (one ``requests.Session``) per adapter instance:

- auth is injected on every request by a ``requests.auth.AuthBase``
  subclass for the network's scheme
- a response hook parses rate-limit headers into ``RateLimitInfo``
- failures are classified into ``RateLimitError`` / ``AuthenticationError``
  / retryable or non-retryable ``AffiliateNetworkError``
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Optional
from urllib.parse import parse_qs, urlsplit

import requests
from requests.auth import AuthBase

from core.exceptions import AffiliateNetworkError, AuthenticationError, RateLimitError
from networks.types import RateLimitInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
DEFAULT_USER_AGENT = "AffSync/1.0"

# Header families, highest priority first
RATE_LIMIT_HEADER_PREFIXES = ("X-RateLimit-", "X-Rate-Limit-", "RateLimit-")

# Reset values above this are epoch seconds, below it seconds-from-now
_EPOCH_THRESHOLD = 10 ** 9


# =============================================================================
# Auth injectors
# =============================================================================

class BearerAuth(AuthBase):
    """``Authorization: Bearer <token>`` (CJ, Rakuten)."""

    def __init__(self, token: str):
        self.token = token

    def __call__(self, request):
        request.headers["Authorization"] = f"Bearer {self.token}"
        return request


class ShareASaleAuth(AuthBase):
    """
    ShareASale signed-request authentication.

    Adds the account query params and the two signature headers:
    ``x-ShareASale-Date`` and ``x-ShareASale-Authentication`` where the
    latter is SHA-256 of ``token:date:action:secret``. The ``action``
    query param must already be on the request.
    """

    DATE_FORMAT = "%a, %d %b %Y %H:%M:%S GMT"

    def __init__(self, affiliate_id: str, token: str, secret_key: str, version: str = "2.9",
                 clock: Callable[[], datetime] = None):
        self.affiliate_id = affiliate_id
        self.token = token
        self.secret_key = secret_key
        self.version = version
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def signature(self, timestamp: str, action: str) -> str:
        message = f"{self.token}:{timestamp}:{action}:{self.secret_key}"
        return hashlib.sha256(message.encode()).hexdigest()

    def __call__(self, request):
        query = parse_qs(urlsplit(request.url).query)
        action = (query.get("action") or [""])[0]

        request.prepare_url(request.url, {
            "affiliateId": self.affiliate_id,
            "token": self.token,
            "version": self.version,
        })

        timestamp = self._clock().strftime(self.DATE_FORMAT)
        request.headers["x-ShareASale-Date"] = timestamp
        request.headers["x-ShareASale-Authentication"] = self.signature(timestamp, action)
        return request


# =============================================================================
# Rate-limit headers
# =============================================================================

def _parse_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return None


def parse_retry_after(value, now: datetime = None) -> Optional[float]:
    """``Retry-After`` is either delta-seconds or an HTTP date."""
    if value is None or str(value).strip() == "":
        return None
    text = str(value).strip()
    try:
        return max(0.0, float(text))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def parse_rate_limit_headers(headers, now: datetime = None) -> Optional[RateLimitInfo]:
    """
    Extract rate-limit state from response headers.

    Tries each header family in priority order and uses the first one that
    is present. Returns None when the response carries no rate-limit
    headers at all.
    """
    now = now or datetime.now(timezone.utc)
    limit = remaining = reset = None

    for prefix in RATE_LIMIT_HEADER_PREFIXES:
        limit = _parse_int(headers.get(f"{prefix}Limit"))
        remaining = _parse_int(headers.get(f"{prefix}Remaining"))
        reset = _parse_int(headers.get(f"{prefix}Reset"))
        if limit is not None or remaining is not None:
            break

    retry_after = parse_retry_after(headers.get("Retry-After"), now=now)

    if limit is None and remaining is None and retry_after is None:
        return None

    reset_at = None
    if reset is not None:
        if reset > _EPOCH_THRESHOLD:
            reset_at = datetime.fromtimestamp(reset, tz=timezone.utc)
        else:
            reset_at = now + timedelta(seconds=reset)

    return RateLimitInfo(limit=limit, remaining=remaining, reset_at=reset_at, retry_after=retry_after)


# =============================================================================
# Error classification
# =============================================================================

def _error_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "Message", "error_description", "error"):
            if isinstance(body.get(key), str) and body[key]:
                return body[key]
    return f"HTTP {response.status_code} error"


def classify_response(network, response) -> AffiliateNetworkError:
    """Map a >= 400 response to the matching exception (not raised)."""
    status_code = response.status_code
    message = _error_message(response)

    if status_code == 429:
        info = parse_rate_limit_headers(response.headers) or RateLimitInfo()
        return RateLimitError(
            message,
            network=network,
            retry_after=info.retry_after,
            limit=info.limit,
            remaining=info.remaining,
        )

    if status_code in (401, 403):
        return AuthenticationError(message, network=network, status=status_code)

    return AffiliateNetworkError(
        message,
        network=network,
        code=f"HTTP_{status_code}",
        status=status_code,
        retryable=status_code >= 500,
    )


def classify_exception(network, exc: requests.RequestException) -> AffiliateNetworkError:
    """Map a transport-level failure (no response) to an AffiliateNetworkError."""
    if isinstance(exc, requests.Timeout):
        return AffiliateNetworkError("Request timeout", network=network, code="TIMEOUT", retryable=True)
    if isinstance(exc, requests.ConnectionError):
        return AffiliateNetworkError(
            f"Connection failed: {exc}", network=network, code="CONNECTION_ERROR", retryable=True
        )
    return AffiliateNetworkError(str(exc) or "Request failed", network=network, code="REQUEST_FAILED")


# =============================================================================
# Client
# =============================================================================

class NetworkHttpClient:
    """
    Session wrapper owned by exactly one adapter.

    ``on_rate_limit`` is called with every ``RateLimitInfo`` parsed from a
    response so the adapter's limiter sees fresh server state before its
    next call.
    """

    def __init__(self, network, base_url: str, auth: AuthBase = None, timeout: int = DEFAULT_TIMEOUT,
                 user_agent: str = DEFAULT_USER_AGENT, session: requests.Session = None,
                 on_rate_limit: Callable[[RateLimitInfo], None] = None):
        self.network = network
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limit: Optional[RateLimitInfo] = None
        self._on_rate_limit = on_rate_limit

        self.session = session or requests.Session()
        self.session.auth = auth
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept": "application/json",
        })
        self.session.hooks["response"].append(self.capture_rate_limit)

    def capture_rate_limit(self, response, *args, **kwargs):
        """Response hook: remember the latest rate-limit headers."""
        info = parse_rate_limit_headers(response.headers)
        if info is not None:
            self.rate_limit = info
            if self._on_rate_limit:
                self._on_rate_limit(info)
        return response

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url

    def request(self, method: str, path: str = "", params: dict = None, **kwargs) -> requests.Response:
        url = self.url_for(path)
        try:
            response = self.session.request(method, url, params=params, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            error = classify_exception(self.network, exc)
            logger.warning(f"[{self.network}] {method} {url} failed: {error.code}")
            raise error from exc

        if response.status_code >= 400:
            error = classify_response(self.network, response)
            logger.warning(f"[{self.network}] {method} {url} -> {response.status_code} ({error.code})")
            raise error

        return response

    def get(self, path: str = "", params: dict = None, **kwargs) -> requests.Response:
        return self.request("GET", path, params=params, **kwargs)

    def get_json(self, path: str = "", params: dict = None, **kwargs):
        response = self.get(path, params=params, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise AffiliateNetworkError(
                "Malformed JSON response", network=self.network, code="INVALID_RESPONSE"
            ) from exc

    def close(self) -> None:
        self.session.close()
