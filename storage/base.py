"""
Base storage abstraction for Hermes.

Provides a unified byte-level interface for local and cloud storage backends.
Table files and the router state document are written through it, so the same
router runs against a local directory or an S3 bucket.
All paths are relative to the storage root (local base_dir or S3 bucket).
"""
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    All implementations must support:
    - Path operations relative to a root (base_dir or bucket)
    - Read/write bytes
    - Exists and delete operations
    """

    def __init__(self, base_path: str):
        """
        Initialize storage backend.

        Args:
            base_path: Root path for all operations (local dir or S3 bucket)
        """
        self.base_path = base_path

    @abstractmethod
    def write_bytes(self, data: bytes, path: str) -> str:
        """
        Write bytes to storage, replacing any existing object.

        Args:
            data: Bytes to write
            path: Relative path from base_path

        Returns:
            Full path where data was written
        """
        pass

    @abstractmethod
    def read_bytes(self, path: str) -> bytes:
        """
        Read bytes from storage.

        Args:
            path: Relative path from base_path

        Returns:
            File contents as bytes

        Raises:
            FileNotFoundError: If nothing is stored at path
        """
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if path exists."""
        pass

    @abstractmethod
    def delete(self, path: str) -> bool:
        """
        Delete a file.

        Returns:
            True if something was deleted
        """
        pass

    @abstractmethod
    def get_full_path(self, path: str) -> str:
        """Get full path (local path or s3:// URI) for a relative path."""
        pass

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Return backend type identifier ('local' or 's3')."""
        pass

    def join_path(self, *parts: str) -> str:
        """
        Join path components using forward slashes.

        Works consistently across local and S3 backends.
        """
        clean_parts = [p.strip("/") for p in parts if p]
        return "/".join(clean_parts)


class LocalStorage(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, base_path: str):
        """
        Initialize local storage.

        Args:
            base_path: Base directory for all operations (e.g., "./data")
        """
        super().__init__(base_path)
        self.base_dir = Path(base_path).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def backend_type(self) -> str:
        return "local"

    def _resolve_path(self, path: str) -> Path:
        """Convert relative path to absolute local path."""
        return self.base_dir / path

    def write_bytes(self, data: bytes, path: str) -> str:
        full_path = self._resolve_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        # Write to a sibling temp file then swap, so readers never see a partial file
        tmp_path = full_path.with_name(f".{full_path.name}.tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, full_path)
        return str(full_path)

    def read_bytes(self, path: str) -> bytes:
        return self._resolve_path(path).read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve_path(path).exists()

    def delete(self, path: str) -> bool:
        full_path = self._resolve_path(path)
        if full_path.exists():
            full_path.unlink()
            return True
        return False

    def get_full_path(self, path: str) -> str:
        return str(self._resolve_path(path))


class S3Storage(StorageBackend):
    """AWS S3 storage backend."""

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        prefix: str = "",
    ):
        """
        Initialize S3 storage.

        Args:
            bucket: S3 bucket name (this is the base_path)
            region: AWS region (auto-detected if None)
            aws_access_key_id: AWS access key (uses environment/IAM if None)
            aws_secret_access_key: AWS secret key
            aws_session_token: Session token for temporary credentials
            endpoint_url: Custom endpoint for S3-compatible services
            prefix: Key prefix applied to every path
        """
        super().__init__(bucket)
        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")

        import boto3
        from botocore.config import Config

        boto_config = Config(
            retries={'max_attempts': 3, 'mode': 'adaptive'},
            connect_timeout=10,
            read_timeout=60,
        )

        session_kwargs = {}
        if aws_access_key_id:
            session_kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            session_kwargs["aws_secret_access_key"] = aws_secret_access_key
        if aws_session_token:
            session_kwargs["aws_session_token"] = aws_session_token
        if region:
            session_kwargs["region_name"] = region

        self.s3_client = boto3.client(
            "s3",
            config=boto_config,
            endpoint_url=endpoint_url,
            **session_kwargs
        )

    @property
    def backend_type(self) -> str:
        return "s3"

    def _get_s3_key(self, path: str) -> str:
        """Convert relative path to S3 key."""
        # Normalize path separators (handle Windows paths)
        path = str(path).replace("\\", "/").lstrip("/")
        return self.join_path(self.prefix, path) if self.prefix else path

    def write_bytes(self, data: bytes, path: str) -> str:
        key = self._get_s3_key(path)

        max_retries = 3
        for attempt in range(max_retries):
            try:
                self.s3_client.put_object(Bucket=self.bucket, Key=key, Body=data)
                return f"s3://{self.bucket}/{key}"
            except Exception as e:
                if attempt == max_retries - 1:
                    logger.error(f"Failed to upload {key} after {max_retries} attempts: {e}")
                    raise
                logger.warning(f"Upload attempt {attempt + 1} failed for {key}, retrying...")
                time.sleep(2 ** attempt)  # Exponential backoff

    def read_bytes(self, path: str) -> bytes:
        key = self._get_s3_key(path)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
        except self.s3_client.exceptions.NoSuchKey as e:
            raise FileNotFoundError(f"s3://{self.bucket}/{key}") from e
        return response["Body"].read()

    def exists(self, path: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self.s3_client.head_object(Bucket=self.bucket, Key=self._get_s3_key(path))
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    def delete(self, path: str) -> bool:
        if not self.exists(path):
            return False
        self.s3_client.delete_object(Bucket=self.bucket, Key=self._get_s3_key(path))
        return True

    def get_full_path(self, path: str) -> str:
        return f"s3://{self.bucket}/{self._get_s3_key(path)}"
