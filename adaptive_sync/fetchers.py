from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import requests
from curl_cffi import CurlError
from curl_cffi import requests as curl_requests

from .base import BaseFetcher
from .errors import RateLimitedError, TargetUnavailableError, TransientError
from .models import FetchResult, Target
from .rate_limiter import RateLimitController

logger = logging.getLogger(__name__)

ItemSink = Callable[[Target, List[Any]], FetchResult]


class JsonApiFetcher(BaseFetcher):
    """Fetches a JSON list per target, rotating credentials from the controller's pool.

    url_template is formatted with ``target_id``. Each request takes the next
    credential slot from the RateLimitController, so the pool size handed to
    the orchestrator should equal len(credentials). With ``impersonate`` set,
    requests go through a curl_cffi session posing as that browser.

    Some upstreams report throttling and missing targets inside a 200 body;
    ``rate_limit_codes`` and ``unavailable_codes`` match the payload's
    ``code_key`` field for those cases.
    """

    def __init__(
        self,
        url_template: str,
        rate_limiter: RateLimitController,
        credentials: Sequence[str] = (),
        items_key: str = "data",
        headers: Optional[Dict[str, str]] = None,
        impersonate: Optional[str] = None,
        timeout: int = 20,
        code_key: str = "code",
        rate_limit_codes: Iterable[int] = (),
        unavailable_codes: Iterable[int] = (),
        sink: Optional[ItemSink] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._url_template = url_template
        self._rate_limiter = rate_limiter
        self._credentials = list(credentials)
        self._items_key = items_key
        self._headers = dict(headers or {})
        self._impersonate = impersonate
        self._timeout = timeout
        self._code_key = code_key
        self._rate_limit_codes = frozenset(rate_limit_codes)
        self._unavailable_codes = frozenset(unavailable_codes)
        self._sink = sink
        self._session = session or requests.Session()

    @property
    def pool_size(self) -> int:
        return max(1, len(self._credentials))

    def fetch(self, target: Target) -> Any:
        url = self._url_template.format(target_id=target.target_id)
        cookies = self._next_cookies()
        if self._impersonate:
            session = curl_requests.Session()
            try:
                return session.get(
                    url,
                    headers=self._headers,
                    cookies=cookies,
                    impersonate=self._impersonate,
                    timeout=self._timeout,
                )
            except CurlError as exc:
                raise TransientError(f"{type(exc).__name__}: {exc}") from exc
            finally:
                session.close()
        return self._session.get(url, headers=self._headers, cookies=cookies, timeout=self._timeout)

    def parse(self, response: Any, target: Target) -> List[Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientError("invalid_json") from exc

        if isinstance(payload, dict):
            code = payload.get(self._code_key)
            message = payload.get("message") or payload.get("error") or f"code {code}"
            if code in self._rate_limit_codes:
                raise RateLimitedError(str(message))
            if code in self._unavailable_codes:
                raise TargetUnavailableError(str(message))
            items = _dig(payload, self._items_key)
        else:
            items = payload

        if items is None:
            return []
        if not isinstance(items, list):
            raise TransientError(f"expected a list under {self._items_key!r}")
        return items

    def store(self, target: Target, items: List[Any]) -> FetchResult:
        if self._sink is None:
            return super().store(target, items)
        return self._sink(target, items)

    def _next_cookies(self) -> Optional[Dict[str, str]]:
        index = self._rate_limiter.next_credential_index()
        if not self._credentials:
            return None
        logger.debug("Using credential slot %d of %d", index, len(self._credentials))
        return _parse_cookie_str(self._credentials[index % len(self._credentials)])


def _dig(payload: Dict[str, Any], path: str) -> Any:
    value: Any = payload
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _parse_cookie_str(raw: str) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for pair in raw.split(";"):
        part = pair.strip()
        if not part or "=" not in part:
            continue
        k, v = part.split("=", 1)
        cookies[k.strip()] = v.strip()
    return cookies
