from __future__ import annotations

from typing import Any, Optional

import boto3
from botocore.config import Config

from ..config import AwsSettings, settings


def boto3_client(service: str, aws: Optional[AwsSettings] = None) -> Any:
    aws = aws or settings.aws
    kwargs: dict[str, Any] = {
        "region_name": aws.region,
        "config": Config(retries={"max_attempts": 3}, connect_timeout=10, read_timeout=60),
    }
    if aws.access_key_id and aws.secret_access_key:
        kwargs["aws_access_key_id"] = aws.access_key_id
        kwargs["aws_secret_access_key"] = aws.secret_access_key
    if aws.s3_endpoint_url and service == "s3":
        kwargs["endpoint_url"] = aws.s3_endpoint_url
    return boto3.client(service, **kwargs)
