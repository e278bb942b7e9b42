from __future__ import annotations

import logging
from typing import Any, Protocol

import boto3
import botocore.session
from botocore.config import Config
from botocore.credentials import DeferredRefreshableCredentials

LOGGER = logging.getLogger(__name__)

USER_AGENT_EXTRA = "firehose-output"


class FirehoseClient(Protocol):
    def put_record_batch(
        self,
        *,
        DeliveryStreamName: str,
        Records: list[dict[str, Any]],
    ) -> dict[str, Any]:
        ...


def create_firehose_client(
    *,
    region_name: str,
    endpoint_url: str | None = None,
    sts_endpoint_url: str | None = None,
    role_arn: str | None = None,
    eks_pod_execution_role: str | None = None,
    plugin_id: int = 0,
) -> FirehoseClient:
    """Build a Firehose client, optionally chaining through assumed roles.

    The EKS pod execution role (when set) is assumed first from the default
    credential chain, then ``role_arn`` is assumed from whatever that yields.
    """
    session = boto3.session.Session(region_name=region_name)

    for hop in (eks_pod_execution_role, role_arn):
        if not hop:
            continue
        LOGGER.debug("firehose_assume_role", extra={"plugin_id": plugin_id, "role_arn": hop})
        session = _assume_role_session(
            session,
            role_arn=hop,
            region_name=region_name,
            sts_endpoint_url=sts_endpoint_url,
            session_name=f"firehose-output-{plugin_id}",
        )

    return session.client(
        "firehose",
        region_name=region_name,
        endpoint_url=endpoint_url or None,
        config=Config(user_agent_extra=USER_AGENT_EXTRA),
    )


def _assume_role_session(
    base_session: boto3.session.Session,
    *,
    role_arn: str,
    region_name: str,
    sts_endpoint_url: str | None,
    session_name: str,
) -> boto3.session.Session:
    sts = base_session.client(
        "sts",
        region_name=region_name,
        endpoint_url=sts_endpoint_url or None,
        config=Config(user_agent_extra=USER_AGENT_EXTRA),
    )

    def refresh() -> dict[str, str]:
        response = sts.assume_role(RoleArn=role_arn, RoleSessionName=session_name)
        credentials = response["Credentials"]
        return {
            "access_key": credentials["AccessKeyId"],
            "secret_key": credentials["SecretAccessKey"],
            "token": credentials["SessionToken"],
            "expiry_time": credentials["Expiration"].isoformat(),
        }

    botocore_session = botocore.session.get_session()
    # Credentials are fetched on first use and refreshed before expiry.
    botocore_session._credentials = DeferredRefreshableCredentials(
        refresh_using=refresh,
        method="sts-assume-role",
    )
    botocore_session.set_config_variable("region", region_name)
    return boto3.session.Session(botocore_session=botocore_session)
