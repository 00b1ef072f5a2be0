"""Run report models produced by the executor."""

import json
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActionStatus(str, Enum):
    """Final status of one plan action."""

    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    SKIPPED = 'skipped'


class RunState(str, Enum):
    """Lifecycle of a single executor run."""

    NOT_STARTED = 'not_started'
    RUNNING = 'running'
    COMPLETED = 'completed'
    ABORTED = 'aborted'


class ActionOutcome(BaseModel):
    """What happened to the action at ``action_index``."""

    model_config = ConfigDict(frozen=True)

    action_index: int = Field(..., ge=0, description='Position in the plan')
    status: ActionStatus = Field(..., description='Final action status')
    reason: Optional[str] = Field(
        default=None, description='Failure or skip reason, or a note on success'
    )
    started_at: datetime = Field(..., description='When the action started')
    finished_at: datetime = Field(..., description='When the action finished')

    @model_validator(mode='after')
    def validate_reason(self):
        """Failed and skipped outcomes must say why."""
        if self.status != ActionStatus.SUCCEEDED and not self.reason:
            raise ValueError(f'{self.status.value} outcome requires a reason')
        return self

    @classmethod
    def succeeded(
        cls,
        index: int,
        started_at: datetime,
        finished_at: datetime,
        note: Optional[str] = None,
    ) -> 'ActionOutcome':
        return cls(
            action_index=index,
            status=ActionStatus.SUCCEEDED,
            reason=note,
            started_at=started_at,
            finished_at=finished_at,
        )

    @classmethod
    def failed(
        cls, index: int, reason: str, started_at: datetime, finished_at: datetime
    ) -> 'ActionOutcome':
        return cls(
            action_index=index,
            status=ActionStatus.FAILED,
            reason=reason,
            started_at=started_at,
            finished_at=finished_at,
        )

    @classmethod
    def skipped(cls, index: int, reason: str) -> 'ActionOutcome':
        now = utcnow()
        return cls(
            action_index=index,
            status=ActionStatus.SKIPPED,
            reason=reason,
            started_at=now,
            finished_at=now,
        )


class RunReport(BaseModel):
    """Ordered record of outcomes for one execution attempt.

    Outcomes are appended in plan order through :meth:`record`; once
    :meth:`close` is called the report no longer accepts changes.
    """

    plan_created_at: Optional[datetime] = Field(
        default=None, description='Creation time of the executed plan'
    )
    started_at: datetime = Field(default_factory=utcnow, description='Run start time')
    finished_at: Optional[datetime] = Field(default=None, description='Run end time')
    aborted: bool = Field(default=False, description='Run stopped before the end')
    outcomes: List[ActionOutcome] = Field(
        default_factory=list, description='Outcomes in plan order'
    )

    _closed: bool = PrivateAttr(default=False)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_failures(self) -> bool:
        return any(o.status == ActionStatus.FAILED for o in self.outcomes)

    def record(self, outcome: ActionOutcome) -> None:
        """Append the next outcome."""
        if self._closed:
            raise RuntimeError('Run report is closed')
        expected = len(self.outcomes)
        if outcome.action_index != expected:
            raise ValueError(
                f'Outcome for action {outcome.action_index} recorded out of order '
                f'(expected {expected})'
            )
        self.outcomes.append(outcome)

    def close(self, aborted: bool) -> None:
        """Finalize the report. No further outcomes can be recorded."""
        if self._closed:
            raise RuntimeError('Run report is already closed')
        self.aborted = aborted
        self.finished_at = utcnow()
        self._closed = True

    def counts(self) -> Dict[str, int]:
        """Number of outcomes per status."""
        summary = {status.value: 0 for status in ActionStatus}
        for outcome in self.outcomes:
            summary[outcome.status.value] += 1
        return summary

    def failed_outcomes(self) -> List[ActionOutcome]:
        return [o for o in self.outcomes if o.status == ActionStatus.FAILED]

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode='json'), indent=2) + '\n'

    def save(self, path: Union[str, Path]) -> Path:
        """Write the report atomically so readers never see half a file."""
        report_path = Path(path)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = report_path.with_name(report_path.name + '.tmp')
        tmp_path.write_text(self.to_json(), encoding='utf-8')
        os.replace(tmp_path, report_path)
        return report_path
