from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional

import requests

from .errors import RateLimitedError, TargetUnavailableError, TransientError
from .models import FetchResult, Target

UNAVAILABLE_STATUS_CODES = frozenset({404, 410})


class BaseFetcher(ABC):
    """Abstract fetch operation usable as the orchestrator's fetch_one.

    Calling the fetcher runs validate -> fetch -> check_status -> parse -> store
    and turns every HTTP-level outcome into the sync error taxonomy:
    - 429 raises RateLimitedError.
    - 404/410 raise TargetUnavailableError.
    - any other non-2xx status, connection failures and timeouts raise TransientError.
    """

    def __call__(self, target: Target, max_results: int) -> FetchResult:
        self.validate(target)
        try:
            response = self.fetch(target)
        except requests.RequestException as exc:
            raise TransientError(f"{type(exc).__name__}: {exc}") from exc

        self.check_status(response, target)
        items = self.parse(response, target)
        if max_results >= 0:
            items = items[:max_results]
        return self.store(target, items)

    def validate(self, target: Target) -> None:
        if not target.target_id:
            raise TargetUnavailableError("target.target_id is required")

    def check_status(self, response: Any, target: Target) -> None:
        status_code: Optional[int] = getattr(response, "status_code", None)
        if status_code is None:
            raise TransientError("response without status code")
        status_code = int(status_code)
        if 200 <= status_code < 300:
            return
        if status_code == 429:
            raise RateLimitedError(f"HTTP_429 for {target.target_id}")
        if status_code in UNAVAILABLE_STATUS_CODES:
            raise TargetUnavailableError(f"HTTP_{status_code}: {target.target_id} not found")
        raise TransientError(f"HTTP_{status_code}")

    @abstractmethod
    def fetch(self, target: Target) -> Any:
        ...

    @abstractmethod
    def parse(self, response: Any, target: Target) -> List[Any]:
        ...

    def store(self, target: Target, items: List[Any]) -> FetchResult:
        """Hand fetched items to persistence. The default only counts them."""
        return FetchResult(synced=len(items))
