"""boto3 client construction from settings."""
import boto3

from blockhaven.settings import Settings


def make_client(service_name: str, settings: Settings):
    """Create a boto3 client for ``service_name``.

    Explicit keys are used when configured; otherwise boto3 falls back to its
    default credential chain (instance profile, shared config, env).
    """
    kwargs = {"region_name": settings.AWS_REGION}
    if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
        kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
        kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
    return boto3.client(service_name, **kwargs)


def error_code(error: Exception) -> str:
    """Extract the AWS error code from a botocore ClientError."""
    response = getattr(error, "response", None) or {}
    return response.get("Error", {}).get("Code", "")
