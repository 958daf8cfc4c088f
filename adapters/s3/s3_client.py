from __future__ import annotations

from typing import Any

import boto3  # type: ignore[import-untyped]
from botocore.client import BaseClient  # type: ignore[import-untyped]
from botocore.config import Config  # type: ignore[import-untyped]


def create_s3_client(
    *,
    region: str | None = None,
    endpoint_url: str | None = None,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    session_token: str | None = None,
    use_path_style: bool = False,
    max_attempts: int = 3,
    connect_timeout: float = 5.0,
) -> BaseClient:
    options: dict[str, Any] = {
        "retries": {"max_attempts": max_attempts, "mode": "standard"},
        "connect_timeout": connect_timeout,
    }
    if use_path_style:
        options["s3"] = {"addressing_style": "path"}
    return boto3.client(
        "s3",
        region_name=region,
        endpoint_url=endpoint_url or None,
        aws_access_key_id=access_key_id or None,
        aws_secret_access_key=secret_access_key or None,
        aws_session_token=session_token or None,
        config=Config(**options),
    )


def client_from_settings(settings: Any) -> BaseClient:
    """Build a client from any object carrying the ``S3Settings`` attribute names."""
    return create_s3_client(
        region=settings.region,
        endpoint_url=settings.endpoint_url,
        access_key_id=settings.access_key_id,
        secret_access_key=settings.secret_access_key,
        session_token=settings.session_token,
        use_path_style=settings.use_path_style,
        max_attempts=settings.max_attempts,
        connect_timeout=settings.connect_timeout,
    )
