from __future__ import annotations

from collections.abc import Iterable


class PendingBatch:
    """Ordered records awaiting delivery plus their aggregate byte size."""

    def __init__(self) -> None:
        self._records: list[bytes] = []
        self._size_bytes = 0

    @property
    def records(self) -> tuple[bytes, ...]:
        return tuple(self._records)

    @property
    def size_bytes(self) -> int:
        return self._size_bytes

    @property
    def last_size(self) -> int:
        if not self._records:
            return 0
        return len(self._records[-1])

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)

    def append(self, data: bytes) -> None:
        self._records.append(bytes(data))
        self._size_bytes += len(data)

    def extend_last(self, data: bytes) -> None:
        if not self._records:
            raise IndexError("Cannot extend the last record of an empty batch")
        self._records[-1] = self._records[-1] + data
        self._size_bytes += len(data)

    def replace_with(self, records: Iterable[bytes]) -> None:
        self._records = [bytes(r) for r in records]
        self._size_bytes = sum(len(r) for r in self._records)

    def clear(self) -> None:
        self._records = []
        self._size_bytes = 0
