from __future__ import annotations

from io import BytesIO
import logging

import requests
from minio import Minio
from minio.commonconfig import CopySource
from minio.error import S3Error

from funnel_cms.core.config import settings
from funnel_cms.models import StorageProvider


logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    pass


def provider() -> StorageProvider:
    try:
        return StorageProvider((settings.STORAGE_PROVIDER or "bunny").strip().lower())
    except ValueError as error:
        raise StorageError(f"Unknown storage provider: {settings.STORAGE_PROVIDER}") from error


def normalize_key(path: str) -> str:
    value = (path or "").strip().replace("\\", "/").lstrip("/")
    if not value or ".." in value.split("/"):
        raise StorageError("Invalid storage path")
    return value


def _with_scheme(url: str) -> str:
    value = url.rstrip("/")
    if value.startswith("http://") or value.startswith("https://"):
        return value
    return f"https://{value}"


# Bunny CDN


def _bunny_config() -> tuple[str, str, str, str]:
    zone = settings.BUNNY_STORAGE_ZONE
    password = settings.BUNNY_STORAGE_PASSWORD
    pull_zone = settings.BUNNY_PULL_ZONE_URL
    if not zone or not password or not pull_zone:
        raise StorageError(
            "Missing Bunny CDN configuration: BUNNY_STORAGE_ZONE, BUNNY_STORAGE_PASSWORD, BUNNY_PULL_ZONE_URL"
        )
    return zone, password, _with_scheme(pull_zone), settings.BUNNY_STORAGE_HOSTNAME or "storage.bunnycdn.com"


def _bunny_storage_url(key: str) -> str:
    zone, _, _, hostname = _bunny_config()
    return f"https://{hostname}/{zone}/{key}"


def _bunny_request(method: str, key: str, **kwargs) -> requests.Response:
    _, password, _, _ = _bunny_config()
    headers = {"AccessKey": password, **kwargs.pop("headers", {})}
    try:
        response = requests.request(
            method,
            _bunny_storage_url(key),
            headers=headers,
            timeout=settings.STORAGE_HTTP_TIMEOUT_SECONDS,
            **kwargs,
        )
    except requests.RequestException as error:
        raise StorageError(f"Bunny {method} failed: {error}") from error
    if response.status_code >= 400:
        raise StorageError(f"Bunny {method} failed: {response.status_code} {response.text[:300]}")
    return response


# MinIO


def _build_minio_client() -> Minio:
    return Minio(
        settings.MINIO_ENDPOINT,
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        secure=settings.MINIO_SECURE,
    )


def _minio_public_base() -> str:
    if settings.MINIO_PUBLIC_BASE_URL:
        return _with_scheme(settings.MINIO_PUBLIC_BASE_URL)
    scheme = "https" if settings.MINIO_SECURE else "http"
    return f"{scheme}://{settings.MINIO_ENDPOINT}/{settings.MINIO_BUCKET}"


def public_base_url() -> str:
    if provider() == StorageProvider.minio:
        return _minio_public_base()
    _, _, pull_zone, _ = _bunny_config()
    return pull_zone


def public_url(path: str) -> str:
    return f"{public_base_url()}/{normalize_key(path)}"


def path_from_url(url: str | None) -> str | None:
    if not url:
        return None
    value = url.strip()
    try:
        base = public_base_url()
    except StorageError:
        return None
    bare_base = base.split("://", 1)[-1]
    for prefix in (f"{base}/", f"https://{bare_base}/", f"http://{bare_base}/", f"{bare_base}/"):
        if value.startswith(prefix):
            return value[len(prefix):].split("?", 1)[0] or None
    return None


def upload_bytes(
    payload: bytes,
    path: str,
    content_type: str = "application/octet-stream",
) -> str:
    key = normalize_key(path)
    if provider() == StorageProvider.minio:
        client = _build_minio_client()
        try:
            client.put_object(
                settings.MINIO_BUCKET,
                key,
                BytesIO(payload),
                length=len(payload),
                content_type=content_type,
            )
        except S3Error as error:
            raise StorageError(f"MinIO upload failed: {error}") from error
    else:
        _bunny_request("PUT", key, data=payload, headers={"Content-Type": "application/octet-stream"})
    return public_url(key)


def download_bytes(path: str) -> bytes:
    key = normalize_key(path)
    if provider() == StorageProvider.minio:
        client = _build_minio_client()
        try:
            response = client.get_object(settings.MINIO_BUCKET, key)
        except S3Error as error:
            raise StorageError(f"MinIO download failed: {error}") from error
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()
    return _bunny_request("GET", key).content


def delete_object(path: str) -> None:
    key = normalize_key(path)
    if provider() == StorageProvider.minio:
        client = _build_minio_client()
        try:
            client.remove_object(settings.MINIO_BUCKET, key)
        except S3Error as error:
            raise StorageError(f"MinIO delete failed: {error}") from error
        return
    _bunny_request("DELETE", key)


def move_object(source_path: str, target_path: str) -> str:
    source = normalize_key(source_path)
    target = normalize_key(target_path)
    if provider() == StorageProvider.minio:
        client = _build_minio_client()
        try:
            client.copy_object(settings.MINIO_BUCKET, target, CopySource(settings.MINIO_BUCKET, source))
        except S3Error as error:
            raise StorageError(f"MinIO copy failed: {error}") from error
    else:
        upload_bytes(download_bytes(source), target)

    try:
        delete_object(source)
    except StorageError:
        logger.warning("old object delete failed after move: %s", source)
    return public_url(target)


def move_url_to_bin(url: str | None) -> str | None:
    path = path_from_url(url)
    if not path:
        return None
    bin_prefix = settings.STORAGE_BIN_PREFIX.strip("/")
    if path.startswith(f"{bin_prefix}/"):
        return None
    return move_object(path, f"{bin_prefix}/{path}")


def move_url_to_bin_safely(url: str | None) -> str | None:
    try:
        return move_url_to_bin(url)
    except StorageError:
        logger.warning("move to bin failed for %s", url, exc_info=True)
        return None
