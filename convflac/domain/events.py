"""Domain events for the conversion pipeline.

Events flow through the EventBus and decouple the pipeline and scheduler
from the console reporter. See `infrastructure/event_bus.py` for the
pub/sub mechanism.
"""

from typing import List
from pydantic import BaseModel
from .models import JobState, TranscodeJob


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class JobEvent(Event):
    """Base class for events related to a single conversion job."""

    job: TranscodeJob


class JobStarted(JobEvent):
    """Emitted when a job is admitted into the pool."""

    pass


class JobStateChanged(JobEvent):
    """Emitted on every state machine transition."""

    previous: JobState
    current: JobState


class StageCompleted(JobEvent):
    """Emitted when a decode/encode/validate stage exits with status zero."""

    stage: str


class TagWarning(JobEvent):
    """Tags could not be read or written; the job continues."""

    message: str


class TagsCopied(JobEvent):
    count: int


class JobCompleted(JobEvent):
    """Emitted when a job reaches DONE."""

    pass


class JobFailed(JobEvent):
    """Emitted when a job reaches FAILED."""

    error_message: str


class BatchStarted(Event):
    files: int
    threads: int


class BatchFinished(Event):
    """Emitted after every admitted job reached a terminal state."""

    completed: int
    failed: int


class ActionMessage(Event):
    """Free-form operator feedback (warnings about ignored options, etc.)."""

    message: str
    warning: bool = False


class MissingBinaries(Event):
    missing: List[str]
