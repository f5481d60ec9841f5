# File: docpipeline/services/s3_client.py
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
import structlog
from datetime import timedelta
from typing import Any, Iterator, Optional

from docpipeline.core.config import settings
from docpipeline.core.errors import ObjectStoreError
from docpipeline.application.ports.object_store_port import ObjectStorePort, StoredObject

log = structlog.get_logger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


class S3Client(ObjectStorePort):
    """Client to interact with one Amazon S3 bucket (one container)."""

    def __init__(self, bucket_name: Optional[str] = None, s3_client: Optional[Any] = None):
        self.bucket_name = bucket_name or settings.AWS_S3_BUCKET_NAME
        self.container_name = self.bucket_name
        # Credentials come from the environment (IAM role on ECS, env vars locally)
        self.s3_client = s3_client or boto3.client(
            "s3",
            region_name=settings.AWS_REGION,
            endpoint_url=settings.AWS_S3_ENDPOINT_URL,
            config=Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"}),
        )
        self.log = log.bind(s3_bucket=self.bucket_name, aws_region=settings.AWS_REGION)

    def location_for(self, key: str) -> str:
        return f"s3://{self.bucket_name}/{key}"

    def key_from_location(self, location: str) -> str:
        prefix = f"s3://{self.bucket_name}/"
        if location.startswith(prefix):
            return location[len(prefix):]
        if location.startswith("s3://"):
            raise ValueError(f"Location {location} does not belong to bucket {self.bucket_name}")
        return location

    def put(self, key: str, data: bytes, content_type: str) -> str:
        self.log.info("Uploading file to S3...", object_name=key, content_type=content_type, length=len(data))
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type
            )
        except ClientError as e:
            self.log.error("S3 upload failed", object_name=key, error_code=_error_code(e), error=str(e))
            raise ObjectStoreError(f"S3 error uploading {key}", e) from e
        except BotoCoreError as e:
            self.log.exception("Unexpected error during S3 upload", object_name=key, error=str(e))
            raise ObjectStoreError(f"Unexpected error uploading {key}", e) from e
        self.log.info("File uploaded successfully to S3", object_name=key)
        return self.location_for(key)

    def get(self, key: str) -> Optional[bytes]:
        self.log.debug("Downloading file from S3...", object_name=key)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            data = response["Body"].read()
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                self.log.warning("Object not found in S3", object_name=key)
                return None
            self.log.error("S3 download failed", object_name=key, error_code=_error_code(e), error=str(e))
            raise ObjectStoreError(f"S3 error downloading {key}", e) from e
        except BotoCoreError as e:
            self.log.exception("Unexpected error during S3 download", object_name=key, error=str(e))
            raise ObjectStoreError(f"Unexpected error downloading {key}", e) from e
        self.log.debug("File downloaded successfully from S3", object_name=key, length=len(data))
        return data

    def exists(self, key: str) -> bool:
        self.log.debug("Checking file existence in S3", object_name=key)
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            self.log.error("Error checking S3 file existence", object_name=key, error=str(e))
            raise ObjectStoreError(f"S3 error checking {key}", e) from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"Unexpected error checking {key}", e) from e

    def delete(self, key: str) -> bool:
        self.log.info("Deleting file from S3...", object_name=key)
        existed = self.exists(key)
        if not existed:
            self.log.info("Object already absent from S3, nothing to delete", object_name=key)
            return False
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            self.log.error("S3 delete failed", object_name=key, error=str(e))
            raise ObjectStoreError(f"S3 error deleting {key}", e) from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"Unexpected error deleting {key}", e) from e
        self.log.info("File deleted successfully from S3", object_name=key)
        return True

    def signed_url(self, key: str, expiry: timedelta) -> str:
        expires_in = max(1, int(expiry.total_seconds()))
        try:
            url = self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            self.log.error("Failed to generate presigned URL", object_name=key, error=str(e))
            raise ObjectStoreError(f"Could not sign URL for {key}", e) from e
        self.log.debug("Presigned URL generated", object_name=key, expires_in=expires_in)
        return url

    def list_keys(self) -> Iterator[StoredObject]:
        paginator = self.s3_client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket_name):
                for item in page.get("Contents", []):
                    yield StoredObject(
                        key=item["Key"],
                        size_bytes=item.get("Size", 0),
                        last_modified=item["LastModified"],
                    )
        except (ClientError, BotoCoreError) as e:
            self.log.error("S3 listing failed", error=str(e))
            raise ObjectStoreError(f"S3 error listing bucket {self.bucket_name}", e) from e
