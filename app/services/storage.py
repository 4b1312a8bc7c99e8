"""
Storage Service
Blob store for user files - supports S3 and the local filesystem.

Keys are hierarchical: users/<owner>/<resource>/<category>/<file>.
Backends expose blocking primitives; StorageService wraps them for async callers.
"""

import asyncio
import logging
import shutil
import uuid
from abc import ABC, abstractmethod
from functools import partial
from pathlib import Path
from typing import List, Optional

import httpx
from fastapi import UploadFile

from app.core.config import settings

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
}


class StorageBackend(ABC):
    """Blocking key/value object store."""

    @abstractmethod
    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        pass

    @abstractmethod
    def get_object(self, key: str) -> bytes:
        pass

    @abstractmethod
    def list_keys(self, prefix: str) -> List[str]:
        """All object keys under prefix, sorted."""
        pass

    @abstractmethod
    def copy_object(self, src_key: str, dst_key: str) -> None:
        pass

    @abstractmethod
    def delete_object(self, key: str) -> None:
        pass

    @abstractmethod
    def url_for(self, key: str) -> str:
        pass


class LocalStorageBackend(StorageBackend):
    """Files under LOCAL_STORAGE_PATH, served by the /files route."""

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        root = self.base_path.resolve()
        path = (root / key).resolve()
        if root not in path.parents:
            raise KeyError(f"Key escapes storage root: {key}")
        return path

    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        file_path = self._path(key)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "wb") as f:
            f.write(data)

    def get_object(self, key: str) -> bytes:
        with open(self._path(key), "rb") as f:
            return f.read()

    def list_keys(self, prefix: str) -> List[str]:
        # Prefix matching is on the key string, not on directories
        keys = []
        for file_path in self.base_path.rglob("*"):
            if file_path.is_file():
                key = file_path.relative_to(self.base_path).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def copy_object(self, src_key: str, dst_key: str) -> None:
        dst = self._path(dst_key)
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self._path(src_key), dst)

    def delete_object(self, key: str) -> None:
        file_path = self._path(key)
        if file_path.exists() and file_path.is_file():
            file_path.unlink()

    def url_for(self, key: str) -> str:
        return f"/files/{key}"


class S3StorageBackend(StorageBackend):
    """S3 (or S3-compatible) bucket."""

    def __init__(self, client=None, bucket: Optional[str] = None):
        if client is None:
            import boto3
            from botocore.config import Config
            client = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT or None,
                aws_access_key_id=settings.S3_ACCESS_KEY or None,
                aws_secret_access_key=settings.S3_SECRET_KEY or None,
                region_name=settings.S3_REGION,
                config=Config(signature_version="s3v4")
            )
        self.s3 = client
        self.bucket = bucket or settings.S3_BUCKET

    def put_object(self, key: str, data: bytes, content_type: str) -> None:
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    def get_object(self, key: str) -> bytes:
        response = self.s3.get_object(Bucket=self.bucket, Key=key)
        return response["Body"].read()

    def list_keys(self, prefix: str) -> List[str]:
        keys = []
        paginator = self.s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                # Skip zero-byte "folder" markers
                if obj.get("Size", 0) > 0:
                    keys.append(obj["Key"])
        return sorted(keys)

    def copy_object(self, src_key: str, dst_key: str) -> None:
        self.s3.copy_object(
            Bucket=self.bucket,
            CopySource={"Bucket": self.bucket, "Key": src_key},
            Key=dst_key,
        )

    def delete_object(self, key: str) -> None:
        self.s3.delete_object(Bucket=self.bucket, Key=key)

    def url_for(self, key: str) -> str:
        if settings.S3_PUBLIC_BASE_URL:
            return f"{settings.S3_PUBLIC_BASE_URL.rstrip('/')}/{key}"
        return f"https://{self.bucket}.s3.{settings.S3_REGION}.amazonaws.com/{key}"


def build_storage_backend() -> StorageBackend:
    """Pick the backend from settings: local directory unless S3 is configured."""
    if settings.USE_LOCAL_STORAGE or not settings.S3_BUCKET:
        logger.info(f"[Storage] Using local storage: {settings.LOCAL_STORAGE_PATH}")
        return LocalStorageBackend(settings.LOCAL_STORAGE_PATH)
    logger.info(f"[Storage] Using S3: {settings.S3_BUCKET}")
    return S3StorageBackend()


class StorageService:
    """Service for file storage operations."""

    def __init__(self, backend: Optional[StorageBackend] = None):
        self.backend = backend or build_storage_backend()

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    @staticmethod
    def make_key(key_prefix: str, content_type: str = "image/jpeg") -> str:
        """Fresh object key under key_prefix."""
        ext = CONTENT_TYPE_EXTENSIONS.get(content_type, "")
        return f"{key_prefix.rstrip('/')}/{uuid.uuid4()}{ext}"

    async def put(self, data: bytes, key_prefix: str, content_type: str = "image/jpeg") -> str:
        """Store bytes under a generated key below key_prefix and return the URL."""
        key = self.make_key(key_prefix, content_type)
        return await self.put_object(key, data, content_type)

    async def put_object(self, key: str, data: bytes, content_type: str = "image/jpeg") -> str:
        """Store bytes at an exact key and return the URL."""
        await self._run(self.backend.put_object, key, data, content_type)
        return self.backend.url_for(key)

    async def upload_file(self, file: UploadFile, key_prefix: str) -> str:
        """Upload a multipart file and return its URL."""
        content = await file.read()
        return await self.put(content, key_prefix, file.content_type or "image/jpeg")

    async def list_keys(self, prefix: str) -> List[str]:
        return await self._run(self.backend.list_keys, prefix)

    async def list_folders(self, prefix: str) -> List[str]:
        """
        Immediate child "folders" of prefix, derived from object keys.

        Args:
            prefix: Key prefix ending in "/" or a partial folder name (e.g. users/u1/temp_)

        Returns:
            Sorted folder names (without the parent path)
        """
        parent = prefix.rsplit("/", 1)[0] + "/" if "/" in prefix else ""
        folders = set()
        for key in await self.list_keys(prefix):
            remainder = key[len(parent):]
            if "/" in remainder:
                folders.add(remainder.split("/", 1)[0])
        return sorted(folders)

    async def copy(self, src_key: str, dst_key: str):
        await self._run(self.backend.copy_object, src_key, dst_key)

    async def delete(self, key: str):
        await self._run(self.backend.delete_object, key)

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every object under prefix; returns how many were removed."""
        keys = await self.list_keys(prefix)
        for key in keys:
            await self.delete(key)
        if keys:
            logger.info(f"[Storage] Deleted {len(keys)} object(s) under {prefix}")
        return len(keys)

    async def get_file(self, key: str) -> bytes:
        return await self._run(self.backend.get_object, key)

    def url_for(self, key: str) -> str:
        return self.backend.url_for(key)

    async def download_bytes(self, url: str, client: Optional[httpx.AsyncClient] = None) -> bytes:
        """
        Download file bytes from a URL (API proxy path or http(s)).

        Args:
            url: /files/<key> or an absolute http(s) URL
            client: Optional shared httpx client

        Returns:
            File bytes
        """
        if url.startswith("/files/"):
            return await self.get_file(url[len("/files/"):])

        if client is not None:
            response = await client.get(url, timeout=60.0)
            response.raise_for_status()
            return response.content

        async with httpx.AsyncClient(follow_redirects=True) as http:
            response = await http.get(url, timeout=60.0)
            response.raise_for_status()
            return response.content


def guess_content_type(url: str) -> str:
    lowered = url.lower().split("?", 1)[0]
    if lowered.endswith(".png"):
        return "image/png"
    if lowered.endswith(".webp"):
        return "image/webp"
    return "image/jpeg"


__all__ = [
    "StorageBackend",
    "LocalStorageBackend",
    "S3StorageBackend",
    "StorageService",
    "build_storage_backend",
    "guess_content_type",
]
