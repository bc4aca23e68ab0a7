from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum

from pydantic import ValidationError

from marketdesk.combiner import combine_snapshots
from marketdesk.config.settings import settings
from marketdesk.exceptions import MalformedResponse, NetworkUnavailable
from marketdesk.providers.market_api import MarketApiClient
from marketdesk.schemas.market import EXCHANGES, ExchangeSnapshot, IndicesResponse, LiveMarketSnapshot
from marketdesk.state import DashboardState

logger = logging.getLogger(__name__)


class FeedState(StrEnum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    FALLBACK_POLL = "fallback_poll"
    DISCONNECTED = "disconnected"
    DISPOSED = "disposed"


class LiveFeedClient:
    """Keeps the unified market snapshot current.

    Snapshots come from the server-sent event stream. When streaming is off,
    or the stream fails before delivering anything, both exchanges are
    polled once and combined instead. A stream that drops after delivering
    data is re-opened after ``reconnect_delay`` seconds until disposal.
    """

    def __init__(
        self,
        state: DashboardState,
        client: MarketApiClient,
        on_snapshot: Callable[[LiveMarketSnapshot], None],
        stream_enabled: bool | None = None,
        stream_path: str | None = None,
        event_name: str | None = None,
        reconnect_delay: float | None = None,
    ) -> None:
        self._state = state
        self._client = client
        self._on_snapshot = on_snapshot
        self._stream_enabled = settings.feed.stream_enabled if stream_enabled is None else stream_enabled
        self._stream_path = stream_path or settings.feed.stream_path
        self._event_name = event_name or settings.feed.snapshot_event
        self._reconnect_delay = (
            settings.feed.reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        )
        self._task: asyncio.Task[None] | None = None
        self._disposed = False
        self._has_snapshot = False
        self.state = FeedState.CONNECTING

    @property
    def disposed(self) -> bool:
        return self._disposed or self._state.disposed

    @property
    def has_snapshot(self) -> bool:
        return self._has_snapshot

    def start(self) -> asyncio.Task[None]:
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self._task

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def dispose(self) -> None:
        self._disposed = True
        self.state = FeedState.DISPOSED
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        if not self._stream_enabled:
            await self.poll_fallback()
            return

        while not self.disposed:
            await self._consume_stream()
            if self.disposed:
                return
            if not self._has_snapshot:
                await self.poll_fallback()
                return

            # Keep the last snapshot and re-subscribe after the retry delay.
            self.state = FeedState.DISCONNECTED
            logger.info(f"Live market stream closed; reconnecting in {self._reconnect_delay}s")
            await asyncio.sleep(self._reconnect_delay)

    async def _consume_stream(self) -> None:
        self.state = FeedState.CONNECTING
        try:
            async for event_name, data in self._client.stream_events(self._stream_path):
                if self.disposed:
                    return
                if event_name == self._event_name:
                    self._handle_event(data)
        except NetworkUnavailable as exc:
            logger.warning(f"Live market stream failed: {exc}")

    def _handle_event(self, data: str) -> None:
        try:
            snapshot = LiveMarketSnapshot.model_validate_json(data)
        except ValidationError as exc:
            logger.warning(f"Ignoring malformed live snapshot: {exc}")
            return
        self.state = FeedState.STREAMING
        self._apply(snapshot)

    def _apply(self, snapshot: LiveMarketSnapshot) -> None:
        if self.disposed:
            return
        self._has_snapshot = True
        self._on_snapshot(snapshot)

    async def poll_fallback(self) -> bool:
        """Fetch both exchanges once and apply their combination.

        Returns True when a snapshot was applied.
        """
        self.state = FeedState.FALLBACK_POLL
        results = await asyncio.gather(
            *(self._client.fetch_indices(exchange) for exchange in EXCHANGES),
            return_exceptions=True,
        )
        if self.disposed:
            return False

        snapshots: list[ExchangeSnapshot | None] = []
        for exchange, result in zip(EXCHANGES, results):
            if isinstance(result, (NetworkUnavailable, MalformedResponse)):
                logger.warning(f"Fallback snapshot for {exchange} failed: {result}")
                snapshots.append(None)
            elif isinstance(result, BaseException):
                raise result
            elif isinstance(result, IndicesResponse) and result.success and result.data is not None:
                snapshots.append(result.data)
            else:
                snapshots.append(None)

        try:
            if not any(snapshot is not None for snapshot in snapshots):
                logger.warning("Fallback poll returned no exchange data")
                return False
            nse, bse = snapshots
            self._apply(combine_snapshots(nse, bse))
            return True
        finally:
            self._state.loading = False
