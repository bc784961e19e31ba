import random
from datetime import datetime, timezone

from aiohttp import web
from loguru import logger
from run_status_client.models import RunStatus

PROGRESSION = (RunStatus.queued, RunStatus.processing, RunStatus.post_process)


class RunServer:
    def __init__(
        self,
        completion_time: float = 10.0,
        error_rate: float = 0.1,
        final_status: RunStatus = RunStatus.done,
        wrap_response: bool = True,
    ):
        self.completion_time = completion_time
        self.error_rate = error_rate
        self.final_status = final_status
        self.wrap_response = wrap_response
        # number of upcoming requests answered with 503 regardless of error_rate
        self.pending_errors = 0
        self.runs = {}
        self.request_count = 0
        self.app = web.Application()
        self.app.router.add_get("/api/v1/runs/{run_id}", self.handle_run)
        self.logger = logger
        self.runner = None

    def add_run(self, run_id: str, repository: str = "acme/widgets") -> None:
        self.runs[run_id] = {"repository": repository, "started": None}

    def status_for(self, run_id: str) -> RunStatus:
        run = self.runs[run_id]
        if run["started"] is None:
            run["started"] = datetime.now()

        elapsed = (datetime.now() - run["started"]).total_seconds()
        if elapsed >= self.completion_time:
            return self.final_status
        step = int(elapsed / self.completion_time * len(PROGRESSION))
        return PROGRESSION[min(step, len(PROGRESSION) - 1)]

    async def handle_run(self, request):
        self.request_count += 1
        run_id = request.match_info["run_id"]
        if run_id not in self.runs:
            return web.json_response({"error": "run not found"}, status=404)

        if self.pending_errors > 0 or random.random() < self.error_rate:
            self.pending_errors = max(self.pending_errors - 1, 0)
            self.logger.info("Returning transient error")
            return web.json_response({"error": "service unavailable"}, status=503)

        status = self.status_for(run_id)
        self.logger.info(f"Returning {status.value} for run {run_id}")
        now = datetime.now(timezone.utc).isoformat()
        run = {
            "id": run_id,
            "status": status.value,
            "repository": self.runs[run_id]["repository"],
            "source": "main",
            "target": f"run/{run_id}",
            "updatedAt": now,
        }
        return web.json_response({"data": run} if self.wrap_response else run)

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self):
        if self.runner is not None:
            await self.runner.cleanup()
