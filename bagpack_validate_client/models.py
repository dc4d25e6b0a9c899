from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"


class ValidateCommand(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bag_location: str = Field(alias="bagLocation")


class JobHandle(BaseModel):
    job_id: str
    locator: str


class _StatusBase(BaseModel):
    raw_response: dict = Field(default_factory=dict)
    elapsed_time: float = 0.0

    @property
    def label(self) -> str:
        return self.kind


class Pending(_StatusBase):
    kind: Literal["PENDING"] = "PENDING"


class Running(_StatusBase):
    kind: Literal["RUNNING"] = "RUNNING"


class Done(_StatusBase):
    kind: Literal["DONE"] = "DONE"
    result: Any = None


class Failed(_StatusBase):
    kind: Literal["FAILED"] = "FAILED"
    error: str = ""


class Unknown(_StatusBase):
    kind: Literal["UNKNOWN"] = "UNKNOWN"
    raw: str = ""

    @property
    def label(self) -> str:
        return self.raw or "<missing>"


JobStatus = Union[Pending, Running, Done, Failed, Unknown]


def parse_job_status(record: dict, elapsed_time: float = 0.0) -> JobStatus:
    """Turns a status record from the service into one of the status variants"""
    raw = record.get("status")
    common = {"raw_response": record, "elapsed_time": elapsed_time}
    try:
        state = JobState(raw)
    except ValueError:
        return Unknown(raw="" if raw is None else str(raw), **common)

    if state is JobState.DONE:
        return Done(result=record.get("result"), **common)
    if state is JobState.FAILED:
        error = record.get("error")
        return Failed(error="" if error is None else str(error), **common)
    if state is JobState.RUNNING:
        return Running(**common)
    return Pending(**common)


class SubmitResult(BaseModel):
    locator: Optional[str] = None
    result: Any = None


class ValidationOutcome(BaseModel):
    """What one invocation ends with: a locator (no-wait mode) or a result"""

    locator: Optional[str] = None
    result: Any = None
    waited: bool = False


class StatusPollingConfig(BaseModel):
    interval: float = Field(default=1.0, gt=0)  # seconds


class PollSession(BaseModel):
    handle: JobHandle
    interval: float
    polls: int = 0
    waited: float = 0.0
