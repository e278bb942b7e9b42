from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from time import monotonic

from firehose_output.batch import PendingBatch
from firehose_output.client import FirehoseClient
from firehose_output.encoder import (
    DEFAULT_TIME_FORMAT,
    MAXIMUM_RECORD_SIZE,
    EncodeError,
    RecordEncoder,
    TimestampFormatter,
)
from firehose_output.models import (
    SERVICE_UNAVAILABLE,
    PutRecordBatchResult,
    Record,
    SendStatus,
)
from firehose_output.timeout import DeliveryTimeoutError, FailureWatchdog

LOGGER = logging.getLogger(__name__)

# Firehose API limits https://docs.aws.amazon.com/firehose/latest/dev/limits.html
MAXIMUM_RECORDS_PER_PUT = 500
MAXIMUM_PUT_RECORD_BATCH_SIZE = 4_194_304


class FirehoseOutput:
    """Buffers encoded records and delivers them with PutRecordBatch.

    Not thread-safe: callers must serialize ``add_record`` and ``flush``.
    Retries are cooperative; a failed send leaves records buffered until the
    next ``add_record`` or ``flush`` call.
    """

    def __init__(
        self,
        *,
        client: FirehoseClient,
        delivery_stream: str,
        failure_timeout_s: float,
        data_keys: str | None = None,
        log_key: str | None = None,
        replace_dots: str | None = None,
        time_key: str | None = None,
        time_key_format: str = DEFAULT_TIME_FORMAT,
        simple_aggregation: bool = False,
        plugin_id: int = 0,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        if not delivery_stream:
            raise ValueError("delivery_stream is required")

        self._client = client
        self._delivery_stream = delivery_stream
        self._plugin_id = plugin_id
        self._simple_aggregation = simple_aggregation
        self._time_key = time_key or None
        self._time_formatter = TimestampFormatter(time_key_format) if self._time_key else None
        self._encoder = RecordEncoder(
            delivery_stream=delivery_stream,
            data_keys=data_keys,
            log_key=log_key,
            replace_dots=replace_dots,
            plugin_id=plugin_id,
        )
        self._watchdog = FailureWatchdog(timeout_s=failure_timeout_s, clock=clock)
        self._batch = PendingBatch()

    @property
    def batch(self) -> PendingBatch:
        return self._batch

    @property
    def watchdog(self) -> FailureWatchdog:
        return self._watchdog

    def add_record(self, record: Record, timestamp: datetime | None = None) -> SendStatus:
        """Buffer one record, sending the current batch first if it is full.

        Bad records are logged and dropped with ``OK`` so the rest of the
        chunk continues. If the implicit send does not return ``OK``, that
        status is returned and ``record`` is not buffered.
        """
        if self._time_formatter is not None:
            try:
                formatted = self._time_formatter.format(timestamp or datetime.now(timezone.utc))
            except (ValueError, OverflowError):
                LOGGER.exception("firehose_timestamp_format_failed", extra=self._log_extra())
                return SendStatus.ERROR
            record = {**record, self._time_key: formatted}

        try:
            data = self._encoder.encode(record)
        except EncodeError:
            LOGGER.exception("firehose_record_dropped", extra=self._log_extra())
            return SendStatus.OK

        new_size = len(data)
        while self._is_full(new_size):
            status = self._send_current_batch()
            if status is not SendStatus.OK:
                return status

        if (
            self._simple_aggregation
            and self._batch
            and self._batch.last_size + new_size <= MAXIMUM_RECORD_SIZE
        ):
            self._batch.extend_last(data)
        else:
            self._batch.append(data)
        return SendStatus.OK

    def flush(self) -> SendStatus:
        return self._send_current_batch()

    def _is_full(self, new_size: int) -> bool:
        if not self._batch:
            return False
        return (
            len(self._batch) >= MAXIMUM_RECORDS_PER_PUT
            or self._batch.size_bytes + new_size > MAXIMUM_PUT_RECORD_BATCH_SIZE
        )

    def _send_current_batch(self) -> SendStatus:
        if not self._batch:
            return SendStatus.OK

        if self._watchdog.check():
            raise DeliveryTimeoutError(
                elapsed_s=self._watchdog.elapsed_s(),
                timeout_s=self._watchdog.timeout_s,
            )

        sent = self._batch.records
        try:
            response = self._client.put_record_batch(
                DeliveryStreamName=self._delivery_stream,
                Records=[{"Data": data} for data in sent],
            )
            result = PutRecordBatchResult.from_response(response)
            if result.failed_put_count:
                _check_outcomes(result, sent_count=len(sent))
        except Exception as exc:
            LOGGER.exception(
                "firehose_put_record_batch_failed",
                extra=self._log_extra(pending_count=len(sent)),
            )
            self._watchdog.start()
            if _extract_error_code(exc) == SERVICE_UNAVAILABLE:
                self._warn_throughput()
            return SendStatus.RETRY

        LOGGER.debug("firehose_batch_sent", extra=self._log_extra(sent_count=len(sent)))
        return self._process_api_response(result, sent=sent)

    def _process_api_response(
        self,
        result: PutRecordBatchResult,
        *,
        sent: Sequence[bytes],
    ) -> SendStatus:
        failed_count = result.failed_put_count
        if failed_count == 0:
            self._watchdog.reset()
            self._batch.clear()
            return SendStatus.OK

        if failed_count >= len(sent):
            # No progress was made; keep the batch as-is for an identical resend.
            self._watchdog.start()
            LOGGER.error(
                "firehose_no_records_accepted",
                extra=self._log_extra(failed=failed_count, sent_count=len(sent)),
            )
            return SendStatus.RETRY

        LOGGER.warning(
            "firehose_partial_failure",
            extra=self._log_extra(failed=failed_count, sent_count=len(sent)),
        )
        failed_records: list[bytes] = []
        for data, outcome in zip(sent, result.request_responses, strict=True):
            if outcome.failed:
                LOGGER.debug(
                    "firehose_record_failed",
                    extra=self._log_extra(
                        error_code=outcome.error_code,
                        error_message=outcome.error_message,
                    ),
                )
                failed_records.append(data)
            if outcome.overloaded:
                # Whole batch stays buffered, including records already accepted.
                self._warn_throughput()
                return SendStatus.RETRY

        self._batch.replace_with(failed_records)
        return SendStatus.OK

    def _warn_throughput(self) -> None:
        LOGGER.warning("firehose_throughput_exceeded", extra=self._log_extra())

    def _log_extra(self, **fields: object) -> dict[str, object]:
        return {
            "plugin_id": self._plugin_id,
            "delivery_stream": self._delivery_stream,
            **fields,
        }


def _check_outcomes(result: PutRecordBatchResult, *, sent_count: int) -> None:
    # Outcomes are matched to records by index, and the failed subset must shrink the batch.
    outcomes = result.request_responses
    if len(outcomes) != sent_count:
        raise RuntimeError(
            f"PutRecordBatch returned mismatched result count ({len(outcomes)} != {sent_count})"
        )
    failed_outcomes = sum(1 for outcome in outcomes if outcome.failed)
    if failed_outcomes != result.failed_put_count:
        raise RuntimeError(
            "PutRecordBatch returned inconsistent failure count "
            f"(FailedPutCount={result.failed_put_count}, failed outcomes={failed_outcomes})"
        )


def _extract_error_code(exc: Exception) -> str | None:
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        error = response.get("Error")
        if isinstance(error, dict) and error.get("Code") is not None:
            return str(error["Code"])
    return None
