from typing import Any, Optional


class PollError(Exception):
    """Base class for every outcome of a poll session other than success"""


class HardFailure(PollError):
    """The unconditional first fetch failed, so the run was never observed"""

    def __init__(self, cause: BaseException):
        super().__init__(f"Failed to fetch run status: {cause}")
        self.cause = cause


class TransientFailure(PollError):
    """A later fetch failed; recorded by the session and retried, never raised"""

    def __init__(self, attempt: int, cause: BaseException):
        super().__init__(f"Poll attempt {attempt} failed (will retry): {cause}")
        self.attempt = attempt
        self.cause = cause


class PollTimeoutError(PollError, TimeoutError):
    def __init__(self, elapsed: float, elapsed_text: Optional[str] = None):
        super().__init__(f"Polling timeout after {elapsed_text or f'{elapsed:.1f}s'}")
        self.elapsed = elapsed


class PollInterruptedError(PollError):
    def __init__(self, last_snapshot: Any):
        super().__init__("Polling interrupted")
        self.last_snapshot = last_snapshot
