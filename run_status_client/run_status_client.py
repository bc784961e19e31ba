import asyncio
from typing import Any, Callable, Dict, Iterable, Optional, TextIO, Union

import aiohttp
from loguru import logger
from run_status_client.cancellation import (
    CancellationSource,
    CancellationToken,
    interrupt_on_signals,
)
from run_status_client.errors import PollError
from run_status_client.models import PollPolicy, RunResponse
from run_status_client.poller import PollSession

RUNS_ENDPOINT = "/api/v1/runs"


class RunClient:
    def __init__(
        self,
        base_url: str,
        policy: Optional[PollPolicy] = None,
        on_status_change: Optional[Callable[[RunResponse], Any]] = None,
        progress_stream: Optional[TextIO] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.policy = policy or PollPolicy()
        self.logger = logger
        self.on_status_change = on_status_change
        self.progress_stream = progress_stream

    def run_url(self, run_id: str) -> str:
        return f"{self.base_url}{RUNS_ENDPOINT}/{run_id}"

    async def get_run(self, run_id: str, session: aiohttp.ClientSession) -> RunResponse:
        """Fetches the current state of a run from the server"""
        if not run_id:
            raise ValueError("run ID cannot be empty")
        url = self.run_url(run_id)

        try:
            async with session.get(url) as response:
                response.raise_for_status()
                data = await response.json()
        except aiohttp.ClientResponseError as e:
            self.logger.debug(f"HTTP error {e.status} at {url}: {e.message}")
            raise
        except aiohttp.ClientError as e:
            self.logger.debug(f"Request to {url} failed: {e}")
            raise

        # Newer servers wrap the run in {"data": {...}}
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        return RunResponse.model_validate(data)

    def _status_change_handler(self) -> Callable[[RunResponse], Any]:
        last_status = None

        async def handle(run: RunResponse) -> None:
            nonlocal last_status
            if run.status == last_status:
                return
            last_status = run.status
            self.logger.debug(f"Run {run.id} status changed to {run.status}")
            if self.on_status_change is not None:
                result = self.on_status_change(run)
                if asyncio.iscoroutine(result):
                    await result

        return handle

    async def follow_run(
        self, run_id: str, cancellation: Optional[CancellationSource] = None
    ) -> RunResponse:
        """Poll the run until it finishes, fails or is cancelled"""
        poller = PollSession(self.policy, progress_stream=self.progress_stream)

        async with aiohttp.ClientSession() as session:
            return await poller.run(
                lambda: self.get_run(run_id, session),
                self._status_change_handler(),
                cancellation,
            )

    async def follow_runs(
        self, run_ids: Iterable[str], cancellation: Optional[CancellationSource] = None
    ) -> Dict[str, Union[RunResponse, PollError]]:
        """Follows several runs at once, one independent poll session per run"""
        run_ids = list(run_ids)
        if cancellation is None:
            # one signal subscription shared by every session
            with interrupt_on_signals(CancellationToken()) as token:
                return await self.follow_runs(run_ids, token)

        results = await asyncio.gather(
            *[self.follow_run(run_id, cancellation) for run_id in run_ids],
            return_exceptions=True,
        )

        outcomes = {}
        for run_id, result in zip(run_ids, results):
            if isinstance(result, BaseException) and not isinstance(result, PollError):
                raise result
            outcomes[run_id] = result
        return outcomes
