"""
This file configures pytest.

uv sync --group dev
source .venv/bin/activate
uv run pytest -q tests
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"

if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))


class StubFirehoseClient:
    """Replays canned PutRecordBatch responses (or raises them) and records requests."""

    def __init__(self, responses: Sequence[dict[str, Any] | Exception]) -> None:
        self._responses = list(responses)
        self.requests: list[list[bytes]] = []
        self.stream_names: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def put_record_batch(
        self,
        *,
        DeliveryStreamName: str,
        Records: list[dict[str, Any]],
    ) -> dict[str, Any]:
        if not self._responses:
            raise AssertionError("No stubbed Firehose responses left")

        response = self._responses[min(self.calls, len(self._responses) - 1)]
        self.stream_names.append(DeliveryStreamName)
        self.requests.append([record["Data"] for record in Records])
        if isinstance(response, Exception):
            raise response
        return response


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def success_response(count: int) -> dict[str, Any]:
    return {
        "FailedPutCount": 0,
        "Encrypted": False,
        "RequestResponses": [{"RecordId": f"record-{i}"} for i in range(count)],
    }


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()
