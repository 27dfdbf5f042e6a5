"""Async run data models and the run status state machine.

    SUBMITTED -> PROCESSING -> {COMPLETED, FAILED, TIMED_OUT}
    SUBMITTED -> FAILED        (rejected at submit time)

Terminal states have no outgoing transitions. PROCESSING -> PROCESSING is
allowed (another non-terminal poll) and is a no-op.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from paygate.exceptions import InvalidRunTransition


class RunStatus(str, Enum):
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.TIMED_OUT})

_ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.SUBMITTED: frozenset({RunStatus.PROCESSING, RunStatus.FAILED}),
    RunStatus.PROCESSING: frozenset(
        {RunStatus.PROCESSING, RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.TIMED_OUT}
    ),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.TIMED_OUT: frozenset(),
}

# Remote status vocabulary
_REMOTE_SUCCESS = {"success", "completed"}
_REMOTE_FAILURE = {"failed", "error"}


def classify_remote_status(status: str | None) -> RunStatus:
    """Map a remote status string onto the local state machine.

    ``success``/``completed`` -> COMPLETED, ``failed``/``error`` -> FAILED,
    anything else (``processing``, ``unknown``, missing) -> PROCESSING.
    """
    value = (status or "").strip().lower()
    if value in _REMOTE_SUCCESS:
        return RunStatus.COMPLETED
    if value in _REMOTE_FAILURE:
        return RunStatus.FAILED
    return RunStatus.PROCESSING


@dataclass
class AsyncRun:
    """A remotely executed job as observed by this process."""

    run_id: str
    status: RunStatus = RunStatus.SUBMITTED
    output: Any = None
    error: str | None = None
    cost: float | None = None
    duration: float | None = None
    job_slug: str = ""
    model_id: str = ""
    polls: int = 0
    # Progress reported by the router while the run is in flight
    step: str | None = None
    progress: float | None = None
    message: str | None = None
    partial_output: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition(self, target: RunStatus) -> None:
        """Move to *target*, enforcing the state machine.

        Raises:
            InvalidRunTransition: if *target* is not reachable from the current status
        """
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidRunTransition(self.run_id, self.status.value, target.value)
        self.status = target

    def complete(self, output: Any, cost: float | None = None, duration: float | None = None) -> None:
        self.transition(RunStatus.COMPLETED)
        self.output = output
        self.cost = cost
        self.duration = duration

    def fail(self, error: str) -> None:
        self.transition(RunStatus.FAILED)
        self.error = error

    def time_out(self, error: str) -> None:
        self.transition(RunStatus.TIMED_OUT)
        self.error = error

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "cost": self.cost,
            "duration": self.duration,
            "jobSlug": self.job_slug,
            "modelId": self.model_id,
            "step": self.step,
            "progress": self.progress,
            "message": self.message,
            "partialOutput": self.partial_output,
        }


@dataclass
class RunHandle:
    """What `submit` hands back: enough to await or poll the run later."""

    run: AsyncRun
    status_url: str = ""
    message: str = ""
    submitted_at: float = 0.0

    @property
    def run_id(self) -> str:
        return self.run.run_id

    @property
    def accepted(self) -> bool:
        return self.run.status != RunStatus.FAILED


class JobSpec(BaseModel):
    """A unit of remote work."""

    job_slug: str = Field(min_length=1)
    model_id: str = Field(min_length=1)
    inputs: dict[str, Any] = Field(default_factory=dict)
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, gt=0)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "jobSlug": self.job_slug,
            "modelId": self.model_id,
            "inputs": self.inputs,
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["maxTokens"] = self.max_tokens
        return payload


def parse_inputs(pairs: list[dict[str, str]] | None) -> dict[str, Any]:
    """Turn ``[{"key": k, "value": v}, ...]`` into an inputs mapping.

    Values that parse as JSON are decoded; everything else stays a string.
    Entries with an empty key are skipped.
    """
    inputs: dict[str, Any] = {}
    for item in pairs or []:
        key = item.get("key")
        if not key:
            continue
        value = item.get("value", "")
        try:
            inputs[key] = json.loads(value)
        except (TypeError, ValueError):
            inputs[key] = value
    return inputs


def format_cost(cost_micros: float) -> str:
    """Render a cost in micro-units as dollars with 4 decimals."""
    return f"{cost_micros / 1_000_000:.4f}"
