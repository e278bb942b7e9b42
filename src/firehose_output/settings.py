from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from firehose_output.encoder import DEFAULT_TIME_FORMAT, TimestampFormatter


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False)

    delivery_stream: str = Field(alias="FIREHOSE_DELIVERY_STREAM")
    aws_region: str = Field(alias="AWS_REGION")
    data_keys: str | None = Field(default=None, alias="FIREHOSE_DATA_KEYS")
    role_arn: str | None = Field(default=None, alias="FIREHOSE_ROLE_ARN")
    eks_pod_execution_role: str | None = Field(default=None, alias="EKS_POD_EXECUTION_ROLE")
    firehose_endpoint: str | None = Field(default=None, alias="FIREHOSE_ENDPOINT")
    sts_endpoint: str | None = Field(default=None, alias="STS_ENDPOINT")

    time_key: str | None = Field(default=None, alias="FIREHOSE_TIME_KEY")
    time_key_format: str = Field(default=DEFAULT_TIME_FORMAT, alias="FIREHOSE_TIME_KEY_FORMAT")
    log_key: str | None = Field(default=None, alias="FIREHOSE_LOG_KEY")
    replace_dots: str | None = Field(default=None, alias="FIREHOSE_REPLACE_DOTS")
    simple_aggregation: bool = Field(default=False, alias="FIREHOSE_SIMPLE_AGGREGATION")

    failure_timeout_s: float = Field(default=3600.0, alias="FIREHOSE_FAILURE_TIMEOUT_S")
    plugin_id: int = Field(default=0, alias="FIREHOSE_PLUGIN_ID")
    chunk_max_records: int = Field(default=1000, alias="FIREHOSE_CHUNK_MAX_RECORDS")
    retry_interval_s: float = Field(default=1.0, alias="FIREHOSE_RETRY_INTERVAL_S")

    @field_validator("delivery_stream", "aws_region")
    @classmethod
    def _validate_required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("FIREHOSE_DELIVERY_STREAM and AWS_REGION must not be blank")
        return value

    @field_validator("time_key_format")
    @classmethod
    def _validate_time_key_format(cls, value: str) -> str:
        # Raises ValueError for unsupported strftime directives.
        return TimestampFormatter(value).fmt

    @field_validator("failure_timeout_s")
    @classmethod
    def _validate_failure_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("FIREHOSE_FAILURE_TIMEOUT_S must be > 0")
        return value

    @field_validator("chunk_max_records")
    @classmethod
    def _validate_chunk_records(cls, value: int) -> int:
        if value < 1:
            raise ValueError("FIREHOSE_CHUNK_MAX_RECORDS must be >= 1")
        return value

    @field_validator("retry_interval_s")
    @classmethod
    def _validate_retry_interval(cls, value: float) -> float:
        if value < 0:
            raise ValueError("FIREHOSE_RETRY_INTERVAL_S must be >= 0")
        return value
