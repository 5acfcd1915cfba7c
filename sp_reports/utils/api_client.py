"""
SP-API Client Module
Centralized HTTP client for the Reports API with rate limiting and typed errors.

Features:
- Rate limit header parsing (x-amzn-RateLimit-*)
- Per API-type pacing (createReport is limited to 1 request per minute)
- Transport and HTTP failures mapped onto the SPAPIError hierarchy
- Configurable via environment variables

The client never retries on its own. Retrying a report pull is a decision for
whoever invoked the pipeline.
"""

import os
import time
import logging
import requests
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Regional endpoints
ENDPOINTS = {
    "NA": "sellingpartnerapi-na.amazon.com",
    "EU": "sellingpartnerapi-eu.amazon.com",
    "FE": "sellingpartnerapi-fe.amazon.com",
    "UAE": "sellingpartnerapi-eu.amazon.com"   # UAE uses EU endpoint, different token
}


def get_endpoint(region: str) -> str:
    """Get the API endpoint for a region."""
    return ENDPOINTS.get((region or "NA").upper(), ENDPOINTS["NA"])


# =============================================================================
# Custom Exceptions
# =============================================================================

class SPAPIError(Exception):
    """Base exception for SP-API errors."""
    def __init__(self, message: str, status_code: int = None, response_body: dict = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class SPAPIRateLimitError(SPAPIError):
    """Rate limit exceeded (429)."""
    pass


class SPAPITransientError(SPAPIError):
    """Network failure or server error (5xx). The caller may retry the whole pull."""
    pass


class SPAPIFatalError(SPAPIError):
    """Request rejected by Amazon (4xx except 429)."""
    pass


class ReportDocumentError(SPAPIError):
    """Report document metadata did not contain a download URL."""
    pass


TRANSPORT_EXCEPTIONS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


def _error_body(response: requests.Response) -> Optional[dict]:
    try:
        return response.json()
    except ValueError:
        return None


def raise_for_response(response: requests.Response, method: str, url: str):
    """Raise the SPAPIError subclass matching a failed HTTP response."""
    if response.status_code < 400:
        return

    error_body = _error_body(response)

    if response.status_code == 429:
        raise SPAPIRateLimitError(
            f"Rate limited (429) on {method} {url}",
            status_code=response.status_code,
            response_body=error_body
        )
    if response.status_code >= 500:
        raise SPAPITransientError(
            f"Server error: HTTP {response.status_code} on {method} {url}",
            status_code=response.status_code,
            response_body=error_body
        )
    raise SPAPIFatalError(
        f"Request failed: HTTP {response.status_code} on {method} {url}",
        status_code=response.status_code,
        response_body=error_body
    )


# =============================================================================
# Rate Limit Handler
# =============================================================================

class RateLimitHandler:
    """
    Paces SP-API requests per API type.

    SP-API Rate Limits (from Amazon docs):
    - Reports API: 0.0167 req/sec (1 per minute) for createReport
    - Reports API: 2 req/sec for getReport, getReportDocument

    Headers parsed:
    - x-amzn-RateLimit-Limit: Max requests per second
    """

    # Default rate limits by API type (requests per second)
    DEFAULT_LIMITS = {
        "reports_create": 0.0167,  # 1 per minute
        "reports_get": 2.0,
        "default": 1.0
    }

    def __init__(
        self,
        limits: Optional[Dict[str, float]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.limits = dict(self.DEFAULT_LIMITS)
        if limits:
            self.limits.update(limits)
        self.last_request_time: Dict[str, float] = {}
        self.current_limits: Dict[str, float] = {}
        self._sleep = sleep

    def get_min_interval(self, api_type: str) -> float:
        """Get minimum interval between requests for this API type."""
        limit = self.current_limits.get(api_type) or self.limits.get(api_type, 1.0)
        return 1.0 / limit if limit > 0 else 0.0

    def wait_if_needed(self, api_type: str):
        """Block until safe to make next request."""
        last_time = self.last_request_time.get(api_type)
        if last_time is None:
            return

        elapsed = time.time() - last_time
        min_interval = self.get_min_interval(api_type)
        if elapsed < min_interval:
            wait_time = min_interval - elapsed
            logger.debug(f"Rate limiting: waiting {wait_time:.2f}s for {api_type}")
            self._sleep(wait_time)

    def record_request(self, api_type: str):
        """Record that a request was made."""
        self.last_request_time[api_type] = time.time()

    def update_from_response(self, api_type: str, response: requests.Response):
        """Update limits based on response headers."""
        limit_header = response.headers.get("x-amzn-RateLimit-Limit")
        if limit_header:
            try:
                limit = float(limit_header)
            except (ValueError, TypeError):
                return
            if limit > 0:
                self.current_limits[api_type] = limit
                logger.debug(f"Updated rate limit for {api_type}: {limit}/sec")


# =============================================================================
# SP-API Client
# =============================================================================

class SPAPIClient:
    """
    SP-API HTTP client bound to one bearer token and one region.

    Usage:
        client = SPAPIClient(access_token, region="NA")
        response = client.get(url, api_type="reports_get")
        response = client.post(url, json=payload, api_type="reports_create")

    Configuration via environment variables:
        SP_API_TIMEOUT: Request timeout in seconds (default: 30)
    """

    def __init__(
        self,
        access_token: str,
        region: str = "NA",
        timeout: int = None,
        session: requests.Session = None,
        rate_limiter: RateLimitHandler = None
    ):
        self.access_token = access_token
        self.region = region.upper()
        self.endpoint = get_endpoint(self.region)
        self.timeout = timeout or int(os.environ.get("SP_API_TIMEOUT", 30))

        self.rate_limiter = rate_limiter or RateLimitHandler()

        # Request session for connection pooling
        self.session = session or requests.Session()

        self.stats = {
            "requests": 0,
            "rate_limit_waits": 0,
            "errors": 0
        }

    def url(self, path: str) -> str:
        """Build a full SP-API URL for this client's region."""
        return f"https://{self.endpoint}{path}"

    def _add_auth_header(self, headers: dict) -> dict:
        """Add access token to headers if not present."""
        if "x-amz-access-token" not in headers:
            headers["x-amz-access-token"] = self.access_token
        return headers

    def request(
        self,
        method: str,
        url: str,
        api_type: str = "default",
        **kwargs
    ) -> requests.Response:
        """
        Make a single authenticated HTTP request.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Full URL
            api_type: API type for rate limit handling
            **kwargs: Passed to requests (json, params, headers, etc.)

        Returns:
            Response object (status < 400)

        Raises:
            SPAPIError: On transport failure or any HTTP error status
        """
        kwargs["headers"] = self._add_auth_header(dict(kwargs.get("headers") or {}))
        kwargs.setdefault("timeout", self.timeout)

        self.rate_limiter.wait_if_needed(api_type)

        self.stats["requests"] += 1
        logger.debug(f"Request {method} {url}")

        try:
            response = self.session.request(method, url, **kwargs)
        except TRANSPORT_EXCEPTIONS as e:
            self.stats["errors"] += 1
            raise SPAPITransientError(
                f"Connection error on {method} {url}: {type(e).__name__}: {e}"
            ) from e
        finally:
            self.rate_limiter.record_request(api_type)

        self.rate_limiter.update_from_response(api_type, response)

        if response.status_code >= 400:
            self.stats["errors"] += 1
            if response.status_code == 429:
                self.stats["rate_limit_waits"] += 1
            logger.warning(f"HTTP {response.status_code} on {method} {url}")
            raise_for_response(response, method, url)

        return response

    def get(self, url: str, api_type: str = "default", **kwargs) -> requests.Response:
        """Make a GET request."""
        return self.request("GET", url, api_type=api_type, **kwargs)

    def post(self, url: str, api_type: str = "default", **kwargs) -> requests.Response:
        """Make a POST request."""
        return self.request("POST", url, api_type=api_type, **kwargs)

    def download(self, url: str) -> bytes:
        """
        Fetch a pre-signed document URL.

        S3 URLs carry their own signature, so no SP-API auth header is sent.
        """
        try:
            response = self.session.get(url, timeout=self.timeout)
        except TRANSPORT_EXCEPTIONS as e:
            self.stats["errors"] += 1
            raise SPAPITransientError(f"Report download failed: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            self.stats["errors"] += 1
            raise_for_response(response, "GET", "report document url")

        return response.content

    def get_stats(self) -> dict:
        """Get request statistics."""
        return self.stats.copy()
