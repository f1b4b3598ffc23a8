"""S3 service for material blob retrieval."""

import asyncio

import boto3
from botocore.exceptions import ClientError

from studymode.config import get_settings

settings = get_settings()


class StorageError(Exception):
    """A material blob could not be read from object storage."""


class S3Service:
    """Service for reading the original material files kept in S3."""

    def __init__(self):
        """Initialize S3 client with credentials from settings."""
        client_kwargs = {
            "aws_access_key_id": settings.aws_access_key_id or None,
            "aws_secret_access_key": settings.aws_secret_access_key or None,
            "region_name": settings.aws_s3_region,
        }
        # Support MinIO / LocalStack by pointing to a custom endpoint
        if settings.aws_s3_endpoint_url:
            client_kwargs["endpoint_url"] = settings.aws_s3_endpoint_url

        self.s3_client = boto3.client("s3", **client_kwargs)
        self.bucket = settings.aws_s3_bucket

    async def download_material(self, file_key: str) -> tuple[bytes, str | None]:
        """
        Download a material blob from S3.

        Args:
            file_key: S3 object key (path) for the file

        Returns:
            Raw bytes and the stored Content-Type (if any)

        Raises:
            StorageError: If the S3 operation fails
        """

        def _get() -> tuple[bytes, str | None]:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=file_key)
            return response["Body"].read(), response.get("ContentType")

        try:
            return await asyncio.to_thread(_get)
        except ClientError as e:
            raise StorageError(f"Failed to download material from S3: {str(e)}") from e


# Singleton instance
s3_service = S3Service()
