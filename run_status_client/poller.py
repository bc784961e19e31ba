import inspect
import sys
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, TextIO, Union

from loguru import logger
from run_status_client.cancellation import (
    CancellationSource,
    CancellationToken,
    interrupt_on_signals,
)
from run_status_client.errors import (
    HardFailure,
    PollInterruptedError,
    PollTimeoutError,
    TransientFailure,
)
from run_status_client.models import PollPolicy, is_terminal_status, status_of

JobFetcher = Callable[[], Union[Any, Awaitable[Any]]]
UpdateSink = Callable[[Any], Union[None, Awaitable[None]]]

MAX_RECENT_TRANSIENT_ERRORS = 10


def format_duration(seconds: float) -> str:
    """Formats an elapsed duration using the largest sensible unit"""
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    # compare after rounding so 59.96s is not shown as "60.0s"
    if round(seconds, 1) < 60:
        return f"{seconds:.1f}s"
    if round(seconds / 60, 1) < 60:
        return f"{seconds / 60:.1f}m"
    return f"{seconds / 3600:.1f}h"


def format_progress(elapsed: float, status: Any, message: Optional[str] = None) -> str:
    status = getattr(status, "value", status)
    line = f"Polling... [{format_duration(elapsed)} elapsed] Status: {status}"
    if message:
        line += f" - {message}"
    return line


def clear_line(stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stdout
    stream.write("\r\033[K")
    stream.flush()


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class PollSession:
    """Tracks one submitted run until it reaches a terminal status.

    A session is single-use: ``run`` may be awaited once. Fetches never
    overlap, ``on_update`` sees every successful fetch in order before the
    terminal check, and cancellation is only observed between fetches.
    """

    def __init__(
        self,
        policy: Optional[PollPolicy] = None,
        progress_stream: Optional[TextIO] = None,
    ):
        self.policy = policy or PollPolicy()
        self.start_time = time.monotonic()
        self.progress_stream = progress_stream
        self.logger = logger
        self.attempts = 0
        self.transient_error_count = 0
        # only the most recent failures are kept; each one pins a traceback
        self.transient_errors: Deque[TransientFailure] = deque(
            maxlen=MAX_RECENT_TRANSIENT_ERRORS
        )
        self._consumed = False

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def _deadline(self) -> Optional[float]:
        if not self.policy.has_deadline:
            return None
        return self.start_time + self.policy.max_duration

    async def _fetch(self, fetch: JobFetcher) -> Any:
        self.attempts += 1
        return await _resolve(fetch())

    async def _deliver(self, on_update: Optional[UpdateSink], snapshot: Any) -> None:
        if on_update is None:
            return
        try:
            await _resolve(on_update(snapshot))
        except Exception:
            self.logger.opt(exception=True).error("Update callback failed")

    def _show_progress(self, snapshot: Any) -> None:
        stream = self.progress_stream or sys.stdout
        stream.write("\r" + format_progress(self.elapsed, status_of(snapshot)))
        stream.flush()

    async def run(
        self,
        fetch: JobFetcher,
        on_update: Optional[UpdateSink] = None,
        cancellation: Optional[CancellationSource] = None,
    ) -> Any:
        """Polls ``fetch`` until the snapshot it returns has a terminal status.

        Returns the terminal snapshot. Raises ``HardFailure`` if the first
        fetch fails, ``PollTimeoutError`` once ``max_duration`` is spent and
        ``PollInterruptedError`` (carrying the last snapshot) when
        ``cancellation`` fires. Without an explicit ``cancellation`` the
        session listens for SIGINT/SIGTERM while it runs.
        """
        if self._consumed:
            raise RuntimeError("PollSession.run can only be awaited once")
        self._consumed = True

        if cancellation is not None:
            return await self._run(fetch, on_update, cancellation)

        with interrupt_on_signals(CancellationToken()) as token:
            return await self._run(fetch, on_update, token)

    async def _run(
        self,
        fetch: JobFetcher,
        on_update: Optional[UpdateSink],
        cancellation: CancellationSource,
    ) -> Any:
        deadline = self._deadline()

        try:
            snapshot = await self._fetch(fetch)
        except Exception as e:
            self.logger.debug(f"Initial status fetch failed: {e}")
            raise HardFailure(e) from e

        await self._deliver(on_update, snapshot)
        if is_terminal_status(status_of(snapshot)):
            return snapshot

        while True:
            wait = self.policy.interval
            if deadline is not None:
                wait = min(wait, max(deadline - time.monotonic(), 0.0))

            self.logger.debug(f"Run not finished, waiting {wait:.2f}s before next poll")
            if await cancellation.wait(wait):
                self.logger.info("Polling interrupted by user")
                raise PollInterruptedError(snapshot)

            if deadline is not None and time.monotonic() >= deadline:
                elapsed = self.elapsed
                self.logger.warning(f"Polling timed out after {format_duration(elapsed)}")
                raise PollTimeoutError(elapsed, format_duration(elapsed))

            try:
                fetched = await self._fetch(fetch)
            except Exception as e:
                failure = TransientFailure(self.attempts, e)
                self.transient_error_count += 1
                self.transient_errors.append(failure)
                if self.policy.debug:
                    self.logger.warning(str(failure))
                continue

            snapshot = fetched
            await self._deliver(on_update, snapshot)
            if is_terminal_status(status_of(snapshot)):
                return snapshot

            if self.policy.show_progress:
                self._show_progress(snapshot)
