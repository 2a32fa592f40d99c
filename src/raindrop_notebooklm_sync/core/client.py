import logging
import threading
from typing import Any

import requests

from ..errors import AdapterError, AuthError, NetworkError, RateLimited
from .retry import call_with_retry

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 500, 502, 503, 504}


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class ServiceClient:
    """JSON-over-HTTP client shared by the service adapters.

    Keeps one ``requests.Session`` per thread (fetches and applies for the
    two services run on worker threads), maps HTTP failures onto the
    adapter error taxonomy, and retries retryable failures.
    """

    def __init__(
        self,
        service: str,
        base_url: str,
        token: str,
        *,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
    ):
        self.service = service
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = (connect_timeout, read_timeout)
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._thread_local = threading.local()

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
            }
        )
        return session

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json_body: Any = None,
        retry: bool = True,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to ``base_url``.
            params: Query string parameters.
            json_body: Body to send as JSON.
            retry: Retry retryable failures with backoff.

        Returns:
            Decoded JSON, or ``None`` for an empty body.

        Raises:
            AuthError: 401/403.
            RateLimited: 429 (after retries).
            NetworkError: Connection failures, timeouts, 408/5xx (after
                retries).
            AdapterError: Any other non-2xx response.
        """
        operation = f"{self.service} {method} {path}"

        def _send() -> Any:
            return self._send(method, path, params=params, json_body=json_body)

        if not retry:
            return _send()
        return call_with_retry(
            _send,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            operation_name=operation,
        )

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json_body: Any = None,
    ) -> Any:
        url = self.url(path)
        logger.debug("%s %s %s", self.service, method, url)
        try:
            response = self._get_session().request(
                method,
                url,
                params=params,
                json=json_body,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise NetworkError(
                f"{self.service}: timeout calling {path}: {exc}",
                service=self.service,
            ) from exc
        except requests.ConnectionError as exc:
            raise NetworkError(
                f"{self.service}: cannot connect: {exc}",
                service=self.service,
            ) from exc

        status = response.status_code
        if status in (401, 403):
            raise AuthError(
                f"{self.service}: credentials rejected (HTTP {status})",
                service=self.service,
                status_code=status,
            )
        if status == 429:
            raise RateLimited(
                f"{self.service}: rate limited",
                service=self.service,
                retry_after=_parse_retry_after(
                    response.headers.get("Retry-After")
                ),
            )
        if status in RETRYABLE_STATUS_CODES:
            raise NetworkError(
                f"{self.service}: HTTP {status} from {path}",
                service=self.service,
                status_code=status,
            )
        if status >= 400:
            raise AdapterError(
                f"{self.service}: HTTP {status} from {path}: {response.text[:200]}",
                service=self.service,
                status_code=status,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise AdapterError(
                f"{self.service}: invalid JSON from {path}",
                service=self.service,
                status_code=status,
            ) from exc
