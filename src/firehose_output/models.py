from __future__ import annotations

from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

RecordValue = Union[
    None,
    bool,
    int,
    float,
    str,
    bytes,
    list["RecordValue"],
    dict[str, "RecordValue"],
]
Record = dict[str, RecordValue]

SERVICE_UNAVAILABLE = "ServiceUnavailableException"


class SendStatus(str, Enum):
    """Return codes handed back to the host after add/flush."""

    OK = "ok"
    RETRY = "retry"
    ERROR = "error"


class RecordOutcome(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    record_id: str | None = Field(default=None, alias="RecordId")
    error_code: str | None = Field(default=None, alias="ErrorCode")
    error_message: str | None = Field(default=None, alias="ErrorMessage")

    @property
    def failed(self) -> bool:
        return self.error_message is not None or self.error_code is not None

    @property
    def overloaded(self) -> bool:
        return self.error_code == SERVICE_UNAVAILABLE


class PutRecordBatchResult(BaseModel):
    """Parsed PutRecordBatch response; outcomes line up with the request by index."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    failed_put_count: int = Field(default=0, alias="FailedPutCount", ge=0)
    request_responses: list[RecordOutcome] = Field(default_factory=list, alias="RequestResponses")

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> PutRecordBatchResult:
        return cls.model_validate(response)
