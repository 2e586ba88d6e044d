import os
import shutil
import time
from botocore.exceptions import ClientError

from core.config import s3, s3_presign_client, R2_BUCKET, R2_CUSTOM_DOMAIN, STATIC_DIR, URL_CACHE_TTL_SEC, logger

# Simple in-process cache for presigned URLs
_URL_CACHE: dict[str, tuple[str, float]] = {}


def _local_path(key: str) -> str:
    return os.path.join(STATIC_DIR, key)


def file_exists(key: str) -> bool:
    try:
        if s3 and R2_BUCKET:
            try:
                s3.Object(R2_BUCKET, key).load()
                return True
            except ClientError as ce:
                if ce.response.get('Error', {}).get('Code') in ('NoSuchKey', '404', 'NotFound'):
                    return False
                raise
        return os.path.isfile(_local_path(key))
    except Exception as ex:
        logger.warning(f"file_exists failed for {key}: {ex}")
        return False


def copy_key(src_key: str, dst_key: str) -> bool:
    """Server-side copy within the bucket (or the local static dir)."""
    try:
        if s3 and R2_BUCKET:
            s3.Object(R2_BUCKET, dst_key).copy_from(CopySource={"Bucket": R2_BUCKET, "Key": src_key})
        else:
            src = _local_path(src_key)
            if not os.path.isfile(src):
                logger.warning(f"copy_key source missing: {src_key}")
                return False
            dst = _local_path(dst_key)
            os.makedirs(os.path.dirname(dst), exist_ok=True)
            shutil.copyfile(src, dst)
        return True
    except Exception as ex:
        logger.warning(f"copy_key failed {src_key} -> {dst_key}: {ex}")
        return False


def copy_if_absent(src_key: str, dst_key: str) -> str:
    """Returns 'exists', 'copied' or 'failed'."""
    if file_exists(dst_key):
        return "exists"
    return "copied" if copy_key(src_key, dst_key) else "failed"


def upload_bytes(key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
    if s3 and R2_BUCKET:
        bucket = s3.Bucket(R2_BUCKET)
        bucket.put_object(Key=key, Body=data, ContentType=content_type, ACL='private')
    else:
        path = _local_path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
    return key


def upload_file(path: str, key: str, content_type: str = "application/pdf") -> str:
    with open(path, "rb") as f:
        return upload_bytes(key, f.read(), content_type=content_type)


def get_presigned_url(key: str, expires_in: int = 3600) -> str:
    """Cached presigned URL; empty string when storage is local or signing fails."""
    try:
        k = f"{key}|{int(expires_in)}"
        now = time.time()
        cached = _URL_CACHE.get(k)
        if cached and cached[1] > now:
            return cached[0]

        url = ""
        if R2_CUSTOM_DOMAIN and s3_presign_client:
            url = s3_presign_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": R2_BUCKET, "Key": key},
                ExpiresIn=expires_in,
            )
        elif s3:
            url = s3.meta.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": R2_BUCKET, "Key": key},
                ExpiresIn=expires_in,
            )

        if url:
            _URL_CACHE[k] = (url, now + max(1, min(URL_CACHE_TTL_SEC, int(expires_in))))
        return url
    except Exception as ex:
        logger.warning(f"get_presigned_url failed for {key}: {ex}")
        return ""
