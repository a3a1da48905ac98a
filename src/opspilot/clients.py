"""boto3 client construction for the injected AWS collaborators."""

from typing import Any

import boto3
from botocore.config import Config

from opspilot.config import Settings


def create_aws_client(service_name: str, settings: Settings) -> Any:
    """Create a boto3 client with configured region, credentials and read timeout."""
    config = Config(read_timeout=settings.bedrock_read_timeout_seconds)
    kwargs: dict[str, Any] = {"region_name": settings.aws_region, "config": config}
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        kwargs["aws_access_key_id"] = settings.aws_access_key_id
        kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    return boto3.client(service_name, **kwargs)


def create_aws_resource(service_name: str, settings: Settings) -> Any:
    """Create a boto3 resource (DynamoDB tables) with configured region and credentials."""
    kwargs: dict[str, Any] = {"region_name": settings.aws_region}
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        kwargs["aws_access_key_id"] = settings.aws_access_key_id
        kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    return boto3.resource(service_name, **kwargs)
