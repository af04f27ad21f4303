# ponto/infrastructure/storage/s3_storage.py
from __future__ import annotations
from typing import Optional, Tuple
import os, re, logging
import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger("ponto.storage")

# ---------------------------
# Utilidades para URIs de S3
# ---------------------------
def is_s3_uri(uri: str) -> bool:
    u = (uri or "").strip().lower()
    return u.startswith("s3://") or ".amazonaws.com/" in u

def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """
    Acepta formatos:
      - s3://bucket/prefix/opcional/
      - https://<bucket>.s3.<region>.amazonaws.com/prefix/...
      - https://s3.<region>.amazonaws.com/<bucket>/prefix/...
    Retorna (bucket, prefix) sin '/' inicial.
    """
    u = (uri or "").strip()

    if u.startswith("s3://"):
        rest = u[5:]  # quita 's3://'
        bucket, _, prefix = rest.partition("/")
        return bucket, prefix.lstrip("/")

    m = re.match(r"https?://([^./]+)\.s3[.-][^/]+\.amazonaws\.com/(.*)", u)
    if m:
        return m.group(1), m.group(2).lstrip("/")

    m = re.match(r"https?://s3[.-][^/]+\.amazonaws\.com/([^/]+)/?(.*)", u)
    if m:
        return m.group(1), m.group(2).lstrip("/")

    raise ValueError(f"URI S3 no reconocida: {uri}")


class S3EvidenceStorage:
    """Evidencias de auditoría en S3; las lecturas usan URLs prefirmadas de corta duración."""

    def __init__(self, bucket: str, prefix: str = "", client=None, region: Optional[str] = None):
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.client = client or boto3.client("s3", region_name=region or os.getenv("AWS_REGION", "us-east-1"))

    @classmethod
    def from_uri(cls, uri: str, client=None) -> "S3EvidenceStorage":
        bucket, prefix = parse_s3_uri(uri)
        return cls(bucket, prefix, client=client)

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def upload(self, key: str, data: bytes, content_type: str = "image/jpeg") -> bool:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=self._full_key(key),
                Body=data,
                ContentType=content_type,
                IfNoneMatch="*",  # sin upsert: una key existente -> 412 PreconditionFailed
            )
            return True
        except (BotoCoreError, ClientError) as e:
            logger.info({"event": "s3_upload_error", "bucket": self.bucket, "key": key, "error": str(e)})
            return False

    def signed_url(self, key: str, expires_in: int = 3600) -> Optional[str]:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": self._full_key(key)},
                ExpiresIn=int(expires_in),
            )
        except (BotoCoreError, ClientError) as e:
            logger.info({"event": "s3_sign_error", "bucket": self.bucket, "key": key, "error": str(e)})
            return None
