"""
Live profile feed — push full snapshots of the profile set to listeners.

One producer (the profile store, after every committed write), many
consumers (dashboard panels, in-process watchers). Delivery is a full
snapshot each time, at-least-once, and last-write-wins: a subscriber
that falls behind only ever sees the newest snapshot, never a backlog.

A subscription is an owned handle. Use it as an async context manager so
teardown is guaranteed:

    async with feed.subscribe(initial_loader=load) as sub:
        async for snapshot in sub:
            ...

After close(), nothing more is delivered, including the result of an
initial read that was still in flight.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Snapshot = list[dict]
SnapshotLoader = Callable[[], Awaitable[Snapshot]]
SnapshotCallback = Callable[[Snapshot], None]

_CLOSED = object()


class ProfileSubscription:
    def __init__(
        self,
        feed: "ProfileFeed",
        initial_loader: Optional[SnapshotLoader] = None,
        on_snapshot: Optional[SnapshotCallback] = None,
    ):
        self._feed = feed
        self._initial_loader = initial_loader
        self._on_snapshot = on_snapshot
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._initial_task: Optional[asyncio.Task] = None
        self._delivered_version = 0
        self.closed = False

    # ── Lifecycle ───────────────────────────────────────────────────

    def start(self) -> "ProfileSubscription":
        self._feed._attach(self)
        if self._initial_loader is not None:
            self._initial_task = asyncio.create_task(self._load_initial(self._feed.version))
        return self

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed._detach(self)
        if self._initial_task and not self._initial_task.done():
            self._initial_task.cancel()
            try:
                await self._initial_task
            except asyncio.CancelledError:
                pass
        self._drain()
        self._queue.put_nowait(_CLOSED)
        logger.info("🔌 Unsubscribed from live profile updates")

    async def __aenter__(self) -> "ProfileSubscription":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ── Delivery ────────────────────────────────────────────────────

    async def _load_initial(self, version_at_start: int) -> None:
        try:
            snapshot = await self._initial_loader()
        except Exception as e:
            logger.warning(f"Initial profile snapshot failed (waiting for next change): {e}")
            return
        # A publish that landed while we were reading is newer than our read
        if self.closed or self._delivered_version > version_at_start:
            return
        self._offer(snapshot, version_at_start)

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    def _offer(self, snapshot: Snapshot, version: int) -> None:
        if self.closed:
            return
        self._drain()
        self._queue.put_nowait(snapshot)
        self._delivered_version = max(self._delivered_version, version)
        if self._on_snapshot is not None:
            try:
                self._on_snapshot(snapshot)
            except Exception as e:
                logger.warning(f"Profile snapshot listener raised (ignored): {e}")

    async def get(self) -> Snapshot:
        """Wait for the newest snapshot. Raises StopAsyncIteration once closed."""
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> Snapshot:
        return await self.get()


class ProfileFeed:
    """In-process hub. One per process; the profile store owns it."""

    def __init__(self):
        self._subscriptions: set[ProfileSubscription] = set()
        self.version = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        *,
        initial_loader: Optional[SnapshotLoader] = None,
        on_snapshot: Optional[SnapshotCallback] = None,
    ) -> ProfileSubscription:
        """Return an unstarted handle; entering it (or start()) attaches it."""
        return ProfileSubscription(self, initial_loader=initial_loader, on_snapshot=on_snapshot)

    def publish(self, snapshot: Snapshot) -> None:
        self.version += 1
        for sub in list(self._subscriptions):
            sub._offer(snapshot, self.version)
        logger.debug(f"Profile snapshot v{self.version} delivered to {len(self._subscriptions)} listener(s)")

    def _attach(self, sub: ProfileSubscription) -> None:
        self._subscriptions.add(sub)

    def _detach(self, sub: ProfileSubscription) -> None:
        self._subscriptions.discard(sub)
