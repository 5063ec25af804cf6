"""
Shared AWS helpers: credential loading and S3 client creation.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv


def resolve_env_path(env_path: Optional[str] = None) -> str:
    """
    Determine which .env file should be used for AWS credentials.

    Priority order:
      1. Explicit parameter
      2. AWS_ENV_FILE environment variable
      3. ~/.env
    """
    if env_path:
        return env_path
    aws_env_file = os.environ.get("AWS_ENV_FILE")
    if aws_env_file:
        return aws_env_file
    return str(Path.home() / ".env")


def load_credentials_from_env(env_path: Optional[str] = None) -> dict:
    """
    Load AWS credentials from a .env file.

    Returns:
        dict: boto3 client keyword arguments. Empty when the .env file holds no
        keys, in which case boto3's default credential chain applies.
    """
    resolved_path = resolve_env_path(env_path)
    load_dotenv(resolved_path)

    aws_access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
    aws_secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY")
    aws_session_token = os.getenv("AWS_SESSION_TOKEN")
    if not (aws_access_key_id and aws_secret_access_key):
        logging.debug("No AWS keys in %s, using the default credential chain", resolved_path)
        return {}

    logging.debug("AWS credentials loaded from %s", resolved_path)
    client_kwargs = {
        "aws_access_key_id": aws_access_key_id,
        "aws_secret_access_key": aws_secret_access_key,
    }
    if aws_session_token:
        client_kwargs["aws_session_token"] = aws_session_token
    return client_kwargs


def create_s3_client(region: Optional[str] = None, env_path: Optional[str] = None):
    """Create an S3 boto3 client with credentials from the environment."""
    client_kwargs = load_credentials_from_env(env_path)
    if region is not None:
        client_kwargs["region_name"] = region
    return boto3.client("s3", **client_kwargs)


def check_aws_credentials(s3_client) -> bool:
    """
    Check that the S3 client can talk to AWS.

    Returns:
        bool: True if a ListBuckets call succeeds, False otherwise (prints error message)
    """
    try:
        s3_client.list_buckets()
    except (ClientError, BotoCoreError) as exc:
        resolved_path = resolve_env_path()
        print(f"AWS does not seem to be configured: {exc}")
        print(f"Please ensure {resolved_path} (or your AWS profile) provides:")
        print("  AWS_ACCESS_KEY_ID=your-access-key")
        print("  AWS_SECRET_ACCESS_KEY=your-secret-key")
        return False
    return True
