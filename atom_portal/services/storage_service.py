"""
Object storage for member ID photos.

Files live in an S3-compatible bucket under ``id-photos/{user_id}/`` and are
never public: reads go through short-lived signed URLs.
"""

import logging
import os
import re
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from atom_portal.errors import ServiceError

logger = logging.getLogger(__name__)

ID_PHOTO_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}
MAX_ID_PHOTO_BYTES = 5 * 1024 * 1024
SIGNED_URL_SECONDS = 600


def _bucket() -> str:
    return str(os.getenv("S3_BUCKET", "") or "").strip()


def get_s3_client():
    """
    Get a boto3 S3 client for the configured endpoint.
    Returns None when credentials or the bucket are missing.
    """
    key_id = os.getenv("S3_ACCESS_KEY_ID", "")
    secret = os.getenv("S3_SECRET_ACCESS_KEY", "")
    if not key_id or not secret or not _bucket():
        logger.warning("S3 storage not configured")
        return None

    endpoint = str(os.getenv("S3_ENDPOINT_URL", "") or "").strip() or None
    if endpoint and not (endpoint.startswith("http://") or endpoint.startswith("https://")):
        endpoint = f"https://{endpoint}"
    return boto3.client(
        "s3",
        endpoint_url=endpoint,
        region_name=os.getenv("S3_REGION") or None,
        aws_access_key_id=key_id,
        aws_secret_access_key=secret,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def _require_client():
    client = get_s3_client()
    if client is None:
        raise ServiceError("STORAGE_NOT_CONFIGURED", 503)
    return client


def id_photo_key(user_id: str, content_type: str) -> str:
    uid = re.sub(r"[^A-Za-z0-9-]", "", str(user_id or ""))
    return f"id-photos/{uid}/id-photo.{ID_PHOTO_TYPES[content_type]}"


def validate_id_photo(content: Optional[bytes], content_type: Optional[str]) -> str:
    ctype = str(content_type or "").split(";")[0].strip().lower()
    if ctype == "image/jpg":
        ctype = "image/jpeg"
    if ctype not in ID_PHOTO_TYPES:
        raise ServiceError("INVALID_TYPE", details=sorted(ID_PHOTO_TYPES))
    if not content:
        raise ServiceError("EMPTY_FILE")
    if len(content) > MAX_ID_PHOTO_BYTES:
        raise ServiceError("FILE_TOO_LARGE", 413, details=f"max {MAX_ID_PHOTO_BYTES} bytes")
    return ctype


def upload_id_photo(user_id: str, content: bytes, content_type: str) -> str:
    """Upload (overwrite) the member's ID photo and return its object key."""
    ctype = validate_id_photo(content, content_type)
    key = id_photo_key(user_id, ctype)
    client = _require_client()
    try:
        client.put_object(Bucket=_bucket(), Key=key, Body=content, ContentType=ctype)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"ID photo upload failed for {user_id}: {e}")
        raise ServiceError("UPLOAD_FAILED", 502)
    logger.info(f"Uploaded ID photo: {key}")
    return key


def signed_url(key: str, expires_in: int = SIGNED_URL_SECONDS) -> str:
    client = _require_client()
    try:
        return client.generate_presigned_url(
            "get_object",
            Params={"Bucket": _bucket(), "Key": key},
            ExpiresIn=int(expires_in),
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to sign URL for {key}: {e}")
        raise ServiceError("SIGNED_URL_FAILED", 502)
