"""S3 mirror for backup artifacts."""
from datetime import datetime
from typing import Optional

from marketsync.logging_config import get_logger

logger = get_logger(__name__)


class S3BackupMirror:
    """Uploads backup files to an S3 (or S3-compatible) bucket under a date-partitioned key."""

    def __init__(
        self,
        bucket: str,
        region: str,
        prefix: str = "backups",
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client=None,
    ):
        if not bucket:
            raise ValueError("S3 bucket is required for the backup mirror")

        self.bucket = bucket
        self.prefix = prefix.strip("/")
        if client is None:
            import boto3
            client = boto3.client(
                "s3",
                region_name=region or None,
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
            )
        self._client = client

    def object_key(self, filename: str, when: Optional[datetime] = None) -> str:
        """backups/<YYYY-MM-DD>/<filename>"""
        day = (when or datetime.utcnow()).strftime("%Y-%m-%d")
        return "/".join(part for part in (self.prefix, day, filename) if part)

    def upload(self, filename: str, data: bytes) -> str:
        """Upload bytes and return the object key. Errors propagate to the caller."""
        key = self.object_key(filename)
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType="text/csv",
        )
        logger.info(f"File uploaded to S3: {key}", bucket=self.bucket, key=key)
        return key


def mirror_from_config(cfg) -> Optional[S3BackupMirror]:
    """Build the mirror from a Flask config mapping when AWS_S3_BUCKET is set, else None."""
    bucket = cfg.get("AWS_S3_BUCKET", None)
    if not bucket:
        return None
    return S3BackupMirror(
        bucket=bucket,
        region=cfg.get("AWS_REGION", None),
        prefix=cfg.get("BACKUP_S3_PREFIX", "backups"),
        endpoint_url=cfg.get("AWS_S3_ENDPOINT_URL", None),
        access_key_id=cfg.get("AWS_ACCESS_KEY_ID", None),
        secret_access_key=cfg.get("AWS_SECRET_ACCESS_KEY", None),
    )
