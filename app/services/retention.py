from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from loguru import logger

from app.core.errors import StoreUnavailable
from app.schemas.chat import ChatStateResponse

Window = Tuple[int, int]


class ChatMode(str, Enum):
    open = "open"
    closed = "closed"


@dataclass(frozen=True)
class Transition:
    at: datetime
    mode: ChatMode  # mode entered at `at`

    @property
    def kind(self) -> str:
        return "open" if self.mode is ChatMode.open else "close"


def is_open(hour: int, windows: Sequence[Window]) -> bool:
    for start, end in windows:
        if start < end:
            if start <= hour < end:
                return True
        elif hour >= start or hour < end:
            return True
    return False


def mode_at(now: datetime, windows: Sequence[Window]) -> ChatMode:
    return ChatMode.open if is_open(now.hour, windows) else ChatMode.closed


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    """Aware wall-clock time in `tz`, or in the host's local zone."""
    return to_local(datetime.now(timezone.utc), tz)


def to_local(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    return dt.astimezone(tz) if tz is not None else dt.astimezone()


def _instant(dt: datetime) -> datetime:
    # same-tzinfo arithmetic is wall-clock; compare real instants instead
    return dt.astimezone(timezone.utc) if dt.tzinfo is not None else dt


def _next_hour(dt: datetime, tz: Optional[tzinfo]) -> datetime:
    if dt.tzinfo is None:
        return dt + timedelta(hours=1)
    # step one real hour, then re-read the wall clock (DST shifts the offset)
    return to_local(dt.astimezone(timezone.utc) + timedelta(hours=1), tz)


def next_transition(
    now: datetime,
    windows: Sequence[Window],
    tz: Optional[tzinfo] = None,
) -> Optional[Transition]:
    """
    First whole hour strictly after `now` where is_open() flips.

    Aware times are stepped in real hours and judged on the local wall clock
    of `tz` (host zone when None). Returns None when the table never flips
    (always open or always closed).
    """
    currently_open = is_open(now.hour, windows)
    candidate = now.replace(minute=0, second=0, microsecond=0)
    if tz is None and isinstance(now.tzinfo, ZoneInfo):
        tz = now.tzinfo
    # 26 steps: a DST day can have 25 hours
    for _ in range(26):
        candidate = _next_hour(candidate, tz)
        if is_open(candidate.hour, windows) != currently_open:
            return Transition(
                at=candidate,
                mode=ChatMode.open if not currently_open else ChatMode.closed,
            )
    return None


class RetentionScheduler:
    """
    Two-state machine that keeps messages ephemeral.

    Entering CLOSED purges right away and arms a recurring purge every
    `purge_interval` seconds. Entering OPEN disarms it without purging. One
    background task sleeps until each boundary and re-arms itself; at most one
    recurring purge task exists at any time. The mode always follows the
    clock, so a late wake-up (suspend, stalled loop) lands in the right state.
    """

    def __init__(
        self,
        windows: Sequence[Window],
        purge: Callable[[], Awaitable[int]],
        *,
        purge_interval: float = 60.0,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.windows = list(windows)
        self.purge_interval = purge_interval
        self.tz = tz
        self._purge = purge
        self._clock = clock or (lambda: local_now(tz))
        self._sleep = sleep

        self.mode: Optional[ChatMode] = None
        self.next_transition: Optional[Transition] = None
        self._task: Optional[asyncio.Task] = None
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def state(self, now: Optional[datetime] = None) -> ChatStateResponse:
        now = now or self._clock()
        transition = next_transition(now, self.windows, self.tz)
        return ChatStateResponse(
            is_open=is_open(now.hour, self.windows),
            next_transition_at=transition.at if transition else None,
            next_transition_type=transition.kind if transition else None,
        )

    async def start(self) -> None:
        if self.running:
            return
        now = self._clock()
        await self._enter(mode_at(now, self.windows))
        self._task = asyncio.create_task(self._run(now), name="retention-scheduler")

    async def stop(self) -> None:
        task, self._task = self._task, None
        sweeper, self._sweeper = self._sweeper, None
        for t in (task, sweeper):
            if t is None:
                continue
            t.cancel()
            try:
                await t
            except asyncio.CancelledError:
                pass
        logger.info("Retention scheduler stopped")

    async def purge_now(self) -> Optional[int]:
        try:
            count = await self._purge()
        except StoreUnavailable as e:
            logger.error(f"Message purge failed: {e}")
            return None
        logger.info(f"[{self._clock():%Y-%m-%d %H:%M:%S}] Deleted {count} messages")
        return count

    async def _run(self, now: datetime) -> None:
        while True:
            transition = next_transition(now, self.windows, self.tz)
            self.next_transition = transition
            if transition is None:
                logger.info(f"Chat stays {self.mode.value}; no transitions scheduled")
                return

            delay = max((_instant(transition.at) - _instant(self._clock())).total_seconds(), 0.0)
            logger.info(f"Next chat {transition.kind} scheduled for: {transition.at.isoformat()}")
            await self._sleep(delay)

            # never earlier than the boundary, possibly much later
            now = max(self._clock(), transition.at, key=_instant)
            mode = mode_at(now, self.windows)
            if _instant(now) - _instant(transition.at) > timedelta(minutes=1):
                logger.warning(
                    f"Scheduler woke late at {now.isoformat()} "
                    f"(boundary {transition.at.isoformat()}); chat is {mode.value}"
                )
            if mode is not self.mode:
                await self._enter(mode)

    async def _enter(self, mode: ChatMode) -> None:
        self.mode = mode
        if mode is ChatMode.closed:
            logger.info("Chat closed")
            await self.purge_now()
            self._arm_sweeper()
        else:
            logger.info("Chat open")
            self._disarm_sweeper()

    def _arm_sweeper(self) -> None:
        if self.sweeping:
            return
        self._sweeper = asyncio.create_task(self._sweep(), name="retention-sweeper")
        logger.info("Cleanup interval started (chat closed).")

    def _disarm_sweeper(self) -> None:
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None and not sweeper.done():
            sweeper.cancel()
            logger.info("Cleanup interval stopped (chat open).")

    async def _sweep(self) -> None:
        while True:
            await self._sleep(self.purge_interval)
            await self.purge_now()
