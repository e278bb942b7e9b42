from __future__ import annotations

import json
import logging
import os
import sys
import time
from collections.abc import Callable, Iterator, Sequence
from typing import TextIO

from firehose_output.client import create_firehose_client
from firehose_output.models import Record, SendStatus
from firehose_output.output import FirehoseOutput
from firehose_output.settings import Settings
from firehose_output.timeout import DeliveryTimeoutError

LOGGER = logging.getLogger(__name__)


def configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def build_output(settings: Settings) -> FirehoseOutput:
    client = create_firehose_client(
        region_name=settings.aws_region,
        endpoint_url=settings.firehose_endpoint,
        sts_endpoint_url=settings.sts_endpoint,
        role_arn=settings.role_arn,
        eks_pod_execution_role=settings.eks_pod_execution_role,
        plugin_id=settings.plugin_id,
    )
    return FirehoseOutput(
        client=client,
        delivery_stream=settings.delivery_stream,
        failure_timeout_s=settings.failure_timeout_s,
        data_keys=settings.data_keys,
        log_key=settings.log_key,
        replace_dots=settings.replace_dots,
        time_key=settings.time_key,
        time_key_format=settings.time_key_format,
        simple_aggregation=settings.simple_aggregation,
        plugin_id=settings.plugin_id,
    )


def read_chunks(stream: TextIO, *, max_records: int) -> Iterator[list[Record]]:
    """Group NDJSON lines into chunks; lines that are not JSON objects are skipped."""
    chunk: list[Record] = []
    for line_number, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue

        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            LOGGER.warning(
                "input_line_skipped",
                extra={"line_number": line_number, "reason": "invalid_json"},
            )
            continue
        if not isinstance(record, dict):
            LOGGER.warning(
                "input_line_skipped",
                extra={"line_number": line_number, "reason": "not_an_object"},
            )
            continue

        chunk.append(record)
        if len(chunk) >= max_records:
            yield chunk
            chunk = []

    if chunk:
        yield chunk


def flush_chunk(
    output: FirehoseOutput,
    records: Sequence[Record],
    *,
    start: int = 0,
) -> tuple[SendStatus, int]:
    """Add ``records[start:]`` and flush once.

    Returns the status and the index of the first record that was not
    buffered, which is where a retry of this chunk should resume.
    """
    position = start
    while position < len(records):
        status = output.add_record(records[position])
        if status is not SendStatus.OK:
            return status, position
        position += 1

    status = output.flush()
    if status is SendStatus.OK:
        LOGGER.info("chunk_processed", extra={"count": len(records)})
    return status, position


def run(
    *,
    settings: Settings,
    stream: TextIO,
    output: FirehoseOutput | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Feed every chunk from ``stream`` to the output.

    Returns the number of records handed to the output in chunks that were
    flushed, including records the encoder dropped.
    """
    if output is None:
        output = build_output(settings)

    LOGGER.info(
        "service_start",
        extra={
            "delivery_stream": settings.delivery_stream,
            "plugin_id": settings.plugin_id,
            "simple_aggregation": settings.simple_aggregation,
        },
    )

    processed = 0
    for chunk in read_chunks(stream, max_records=settings.chunk_max_records):
        position = 0
        while True:
            status, position = flush_chunk(output, chunk, start=position)
            if status is not SendStatus.RETRY:
                break
            LOGGER.warning("chunk_retry_scheduled", extra={"remaining": len(chunk) - position})
            sleep(settings.retry_interval_s)

        if status is SendStatus.ERROR:
            LOGGER.error("chunk_dropped", extra={"count": len(chunk) - position})
            continue
        processed += len(chunk)

    LOGGER.info("service_stop", extra={"processed": processed})
    return processed


def main(stream: TextIO | None = None) -> int:
    configure_logging()
    settings = Settings()
    try:
        run(settings=settings, stream=stream or sys.stdin)
    except DeliveryTimeoutError:
        LOGGER.exception(
            "delivery_timeout_exit",
            extra={"delivery_stream": settings.delivery_stream},
        )
        return 1
    return 0
