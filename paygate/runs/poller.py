"""Execution poller: submit a remote job and drive it to a terminal status.

The wait loop is a cooperative coroutine. It awaits the injected ``sleep``
between polls, so other workflow instances keep running on the host's event
loop. Clock and sleep are injectable so tests can simulate elapsed time.

Timing rules:
- The deadline is measured from submission (``RunHandle.submitted_at``),
  not from the first poll
- The first status read happens immediately; a run that is already
  terminal returns without sleeping
- Timing out never cancels the remote job; the run is reported TIMED_OUT
  so callers can tell "may still be running" apart from FAILED
- Nothing is retried: a rejected submission is a FAILED run, and a
  transport error while polling propagates as ApiError
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from paygate.clients import CoreClient, RunnerClient
from paygate.config import Settings, get_settings
from paygate.exceptions import ApiError, PaygateError, PollTimeout, SubmissionFailure
from paygate.runs.models import (
    AsyncRun,
    JobSpec,
    RunHandle,
    RunStatus,
    classify_remote_status,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class ExecutionPoller:
    """Submits jobs to the execution router and polls them to completion."""

    def __init__(
        self,
        client: RunnerClient,
        *,
        core_client: CoreClient | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        settings: Settings | None = None,
    ):
        self._client = client
        self._core = core_client
        self._clock = clock
        self._sleep = sleep
        self._settings = settings or get_settings()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ExecutionPoller:
        settings = settings or get_settings()
        return cls(
            RunnerClient.from_settings(settings),
            core_client=CoreClient.from_settings(settings),
            settings=settings,
        )

    # ── Submission ─────────────────────────────────────────────────────────

    async def _post_async(self, job: JobSpec) -> dict[str, Any]:
        try:
            response = await self._client.run_async(job.to_payload())
        except ApiError as e:
            raise SubmissionFailure(str(e)) from e
        if not response.get("accepted") or not response.get("runId"):
            raise SubmissionFailure(
                str(response.get("error") or "Failed to start async execution")
            )
        return response

    async def submit(self, job: JobSpec) -> RunHandle:
        """Post *job* for asynchronous execution.

        Returns:
            RunHandle. If the service did not accept the job the handle's run
            is already FAILED and never enters PROCESSING.
        """
        submitted_at = self._clock()
        run = AsyncRun(run_id="", job_slug=job.job_slug, model_id=job.model_id)
        try:
            response = await self._post_async(job)
        except SubmissionFailure as e:
            logger.warning("Job %s/%s rejected at submit: %s", job.job_slug, job.model_id, e)
            run.fail(str(e))
            return RunHandle(run=run, submitted_at=submitted_at)

        run.run_id = str(response["runId"])
        logger.info("Run submitted: %s (job=%s model=%s)", run.run_id, job.job_slug, job.model_id)
        return RunHandle(
            run=run,
            status_url=str(response.get("statusUrl") or ""),
            message=str(response.get("message") or "Execution started"),
            submitted_at=submitted_at,
        )

    def handle_for(self, run_id: str) -> RunHandle:
        """Handle for a run submitted elsewhere; its deadline starts now."""
        return RunHandle(run=AsyncRun(run_id=run_id), submitted_at=self._clock())

    # ── Observation ────────────────────────────────────────────────────────

    @staticmethod
    def _observe(run: AsyncRun, body: dict[str, Any]) -> None:
        """Apply one remote status report to *run*."""
        target = classify_remote_status(body.get("status"))
        run.step = body.get("step", run.step)
        run.progress = body.get("progress", run.progress)
        run.message = body.get("message", run.message)
        run.partial_output = body.get("partialOutput", run.partial_output)
        if run.status == RunStatus.SUBMITTED:
            run.transition(RunStatus.PROCESSING)
        if target == RunStatus.COMPLETED:
            duration = body.get("duration")
            if duration is None:
                duration = body.get("latencyMs")
            run.complete(body.get("output"), cost=body.get("cost"), duration=duration)
        elif target == RunStatus.FAILED:
            run.fail(str(body.get("error") or "Execution failed"))
        else:
            run.transition(RunStatus.PROCESSING)

    def _check_deadline(self, handle: RunHandle, limit: float) -> None:
        """Raise PollTimeout once more than *limit* seconds have passed since submission."""
        if self._clock() - handle.submitted_at > limit:
            raise PollTimeout(handle.run_id, limit)

    async def get_status(self, run_id: str) -> AsyncRun:
        """Read the current status of *run_id* once. No side effects."""
        body = await self._client.get_run_status(run_id)
        run = AsyncRun(run_id=str(body.get("runId") or run_id))
        self._observe(run, body)
        run.polls = 1
        return run

    async def await_completion(
        self,
        handle: RunHandle,
        poll_interval: float | None = None,
        timeout: float | None = None,
    ) -> AsyncRun:
        """Poll until the run is terminal or *timeout* seconds have passed since submission.

        Args:
            handle: From submit() or handle_for()
            poll_interval: Seconds between polls (default 2.0)
            timeout: Seconds since submission before giving up (default 180.0)

        Returns:
            The run in COMPLETED, FAILED or TIMED_OUT

        Raises:
            ApiError: if a status read fails
        """
        interval = self._settings.poll_interval_seconds if poll_interval is None else poll_interval
        limit = self._settings.poll_timeout_seconds if timeout is None else timeout
        run = handle.run
        if run.is_terminal:
            return run

        while True:
            body = await self._client.get_run_status(run.run_id)
            run.polls += 1
            self._observe(run, body)
            if run.is_terminal:
                logger.info(
                    "Run %s %s after %d poll(s)", run.run_id, run.status.value, run.polls
                )
                return run

            try:
                self._check_deadline(handle, limit)
            except PollTimeout as e:
                logger.warning("Run %s timed out after %d poll(s): %s", run.run_id, run.polls, e)
                run.time_out(str(e))
                return run

            await self._sleep(interval)

    async def submit_and_wait(
        self,
        job: JobSpec,
        poll_interval: float | None = None,
        timeout: float | None = None,
    ) -> AsyncRun:
        handle = await self.submit(job)
        if not handle.accepted:
            return handle.run
        return await self.await_completion(handle, poll_interval, timeout)

    # ── Other run operations ───────────────────────────────────────────────

    async def run(self, job: JobSpec) -> AsyncRun:
        """Execute *job* synchronously via POST /run."""
        run = AsyncRun(run_id="", job_slug=job.job_slug, model_id=job.model_id)
        try:
            body = await self._client.run(job.to_payload())
        except ApiError as e:
            run.fail(str(e))
            return run

        run.run_id = str(body.get("runId") or "")
        run.transition(RunStatus.PROCESSING)
        if body.get("success"):
            duration = body.get("duration")
            if duration is None:
                duration = body.get("latencyMs")
            run.complete(body.get("output"), cost=body.get("cost"), duration=duration)
        else:
            run.fail(str(body.get("error") or "Execution failed"))
        return run

    async def rerun(self, run_id: str) -> RunHandle:
        """Start a fresh run with the same job as *run_id*.

        Raises:
            PaygateError: if no core client is configured
            ApiError: if the rerun request fails
        """
        if self._core is None:
            raise PaygateError("rerun requires a core API client")
        body = await self._core.rerun(run_id)
        new_run_id = str(body.get("runId") or "")
        if not new_run_id:
            raise SubmissionFailure(str(body.get("error") or f"Rerun of {run_id} was not started"))
        logger.info("Rerun of %s started as %s", run_id, new_run_id)
        return RunHandle(
            run=AsyncRun(run_id=new_run_id),
            message=str(body.get("message") or "Rerun started"),
            submitted_at=self._clock(),
        )
