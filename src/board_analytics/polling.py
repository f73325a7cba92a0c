from __future__ import annotations

import asyncio
import http.client
import json
import logging
import urllib.error
import urllib.request
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import DashboardConfig
from .errors import BoardAnalyticsError, SourceError

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]
Fetch = Callable[[], Awaitable[Payload]]

DEFAULT_POLL_INTERVAL_SECONDS = 300


class HTTPMembershipFetcher:
    """Fetch ``/api/memberships`` from a running board analytics server."""

    def __init__(self, base_url: str, timeout_s: int = 30):
        self.url = f"{base_url.rstrip('/')}/api/memberships"
        self.timeout_s = timeout_s

    async def __call__(self) -> Payload:
        return await asyncio.to_thread(self._get)

    def _get(self) -> Payload:
        req = urllib.request.Request(self.url, headers={"Accept": "application/json"}, method="GET")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            raise SourceError(f"{self.url} responded with HTTP {exc.code}") from exc
        except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
            raise SourceError(f"failed to fetch {self.url}: {exc}") from exc


class MembershipPoller:
    """
    Periodically refreshes membership metrics with at most one fetch in flight.

    ``trigger()`` forces an immediate refresh. If a fetch is still running when
    a new one is scheduled, the old fetch is cancelled and awaited before the
    new one starts, so a slow response can never overwrite a newer one.
    """

    def __init__(
        self,
        fetch: Fetch,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        on_update: Optional[Callable[[Payload], None]] = None,
    ) -> None:
        self._fetch = fetch
        self.interval_seconds = interval_seconds
        self.on_update = on_update
        self.latest: Optional[Payload] = None
        self.last_error: Optional[Exception] = None
        self.last_updated: Optional[datetime] = None
        self.cancelled_fetches = 0
        self._inflight: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: DashboardConfig,
        base_url: str,
        on_update: Optional[Callable[[Payload], None]] = None,
    ) -> "MembershipPoller":
        return cls(
            HTTPMembershipFetcher(base_url),
            interval_seconds=config.poll_interval_seconds,
            on_update=on_update,
        )

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def fetch_in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def refresh(self) -> Optional[Payload]:
        """
        Start a fetch, cancelling any fetch still in flight.

        Returns the new payload, or ``None`` when the fetch failed or was
        superseded by a later refresh.
        """

        async with self._lock:
            previous = self._inflight
            if previous is not None and not previous.done():
                previous.cancel()
                self.cancelled_fetches += 1
                await asyncio.wait({previous})
            task = asyncio.ensure_future(self._fetch_once())
            self._inflight = task

        await asyncio.wait({task})
        if task.cancelled():
            return None
        return task.result()

    async def trigger(self) -> Optional[Payload]:
        return await self.refresh()

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.ensure_future(self._run())

    async def stop(self) -> None:
        tasks = [task for task in (self._loop_task, self._inflight) if task is not None and not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
        self._loop_task = None
        self._inflight = None

    async def _run(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval_seconds)

    async def _fetch_once(self) -> Optional[Payload]:
        try:
            payload = await self._fetch()
        except BoardAnalyticsError as exc:
            logger.warning("Membership refresh failed: %s", exc)
            self.last_error = exc
            return None
        except Exception as exc:
            logger.exception("Unexpected error during membership refresh")
            self.last_error = exc
            return None

        self.latest = payload
        self.last_error = None
        self.last_updated = datetime.now(timezone.utc)
        if self.on_update is not None:
            self.on_update(payload)
        return payload
