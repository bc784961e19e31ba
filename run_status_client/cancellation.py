import asyncio
import signal
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol, Sequence

from loguru import logger

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CancellationSource(Protocol):
    def is_cancelled(self) -> bool: ...

    async def wait(self, timeout: Optional[float]) -> bool: ...


class CancellationToken:
    """One-shot cancel flag that a poll session can wait on.

    ``cancel`` only ever sets the flag, and the session only ever reads it, so
    no lock is needed. ``cancel`` must be called from the event loop thread;
    use ``cancel_threadsafe`` from anywhere else.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    def cancel_threadsafe(self, loop: asyncio.AbstractEventLoop) -> None:
        loop.call_soon_threadsafe(self._event.set)

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: Optional[float]) -> bool:
        """Waits up to ``timeout`` seconds; returns True if cancelled meanwhile"""
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


@contextmanager
def interrupt_on_signals(
    token: CancellationToken, signals: Sequence[signal.Signals] = DEFAULT_SIGNALS
) -> Iterator[CancellationToken]:
    """Routes process signals to ``token.cancel`` for the duration of the block"""
    loop = asyncio.get_running_loop()
    installed = []
    for sig in signals:
        try:
            loop.add_signal_handler(sig, token.cancel)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            # add_signal_handler is unavailable on Windows and off the main thread
            logger.debug(f"Cannot listen for {sig.name}: {e}")
            continue
        installed.append(sig)

    try:
        yield token
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
