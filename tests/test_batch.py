from __future__ import annotations

import pytest

from firehose_output.batch import PendingBatch


def test_append_tracks_order_and_size() -> None:
    batch = PendingBatch()
    batch.append(b"one\n")
    batch.append(b"three\n")

    assert batch.records == (b"one\n", b"three\n")
    assert len(batch) == 2
    assert batch.size_bytes == 10
    assert batch.last_size == 6


def test_extend_last_coalesces_into_a_single_record() -> None:
    batch = PendingBatch()
    batch.append(b"a\n")
    batch.extend_last(b"bb\n")

    assert batch.records == (b"a\nbb\n",)
    assert batch.size_bytes == 5


def test_extend_last_on_empty_batch_raises() -> None:
    with pytest.raises(IndexError):
        PendingBatch().extend_last(b"x")


def test_replace_with_recomputes_size() -> None:
    batch = PendingBatch()
    for data in (b"aaaa", b"b", b"cc"):
        batch.append(data)

    batch.replace_with([b"b", b"cc"])

    assert batch.records == (b"b", b"cc")
    assert batch.size_bytes == 3


def test_clear_empties_batch() -> None:
    batch = PendingBatch()
    batch.append(b"x")

    batch.clear()

    assert not batch
    assert batch.records == ()
    assert batch.size_bytes == 0
    assert batch.last_size == 0


def test_records_snapshot_is_not_aliased_with_batch() -> None:
    batch = PendingBatch()
    batch.append(b"first")
    snapshot = batch.records

    batch.extend_last(b"-more")
    batch.append(b"second")
    batch.replace_with([b"second"])

    assert snapshot == (b"first",)


def test_appended_buffers_are_copied() -> None:
    batch = PendingBatch()
    data = bytearray(b"mutable")
    batch.append(data)

    data[:] = b"changed"

    assert batch.records == (b"mutable",)
