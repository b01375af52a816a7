"""Object storage for clips, music and cached narration."""

import logging
import os
import tempfile
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from pathlib import Path
from typing import Optional

import requests
from google.api_core import exceptions as google_exceptions

from ..config import config
from ..errors import NotFoundError

logger = logging.getLogger(__name__)

CLIPS_PREFIX = "clips"
MUSIC_PREFIX = "music"
VOICEOVERS_PREFIX = "voiceovers"


def _qualify(prefix: str, asset_id: str) -> str:
    """Bare ids live under a prefix; URIs and paths are used as-is."""
    if "://" in asset_id or "/" in asset_id:
        return asset_id
    return f"{prefix}/{asset_id}"


def clip_ref(clip_id: str) -> str:
    """Storage reference of an uploaded clip."""
    return _qualify(CLIPS_PREFIX, clip_id)


def music_ref(music_id: str) -> str:
    """Storage reference of a background track."""
    return _qualify(MUSIC_PREFIX, music_id)


def voiceover_path(key: str) -> str:
    """Storage path of cached narration for a voiceover key."""
    return f"{VOICEOVERS_PREFIX}/{key}.mp3"


class ObjectStorage(ABC):
    """Durable blob storage.

    ``upload`` returns a reference that ``fetch`` accepts. Public
    ``http(s)://`` URLs are fetched directly by every backend.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60.0) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Store bytes at a path and return a reference to them."""
        ...

    @abstractmethod
    def _fetch_stored(self, ref: str) -> bytes:
        """Read bytes held by this backend.

        Raises:
            NotFoundError: If nothing is stored under the reference.
        """
        ...

    def fetch(self, ref: str) -> bytes:
        """Return the bytes behind a reference.

        Raises:
            NotFoundError: If the asset is absent or cannot be retrieved.
        """
        if ref.startswith(("http://", "https://")):
            return self._fetch_url(ref)
        return self._fetch_stored(ref)

    def _fetch_url(self, url: str) -> bytes:
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            logger.warning(f"Download failed for {url}: {e}")
            raise NotFoundError(url, f"Asset unavailable: {url} ({e})") from e

        if response.status_code == 404:
            raise NotFoundError(url)
        if response.status_code != 200:
            raise NotFoundError(url, f"Asset unavailable: {url} (HTTP {response.status_code})")
        return response.content


class LocalStorage(ObjectStorage):
    """Storage rooted in a local directory."""

    def __init__(self, root: Optional[Path] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.root = Path(root or config.storage_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, ref: str) -> Path:
        if ref.startswith("file://"):
            return Path(ref[len("file://"):])
        return self.root / ref

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        target = self._path_for(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        # Readers never observe a partially written file
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(f"Stored {len(data)} bytes at {target}")
        return path

    def _fetch_stored(self, ref: str) -> bytes:
        target = self._path_for(ref)
        if not target.is_file():
            raise NotFoundError(ref)
        return target.read_bytes()


class GCSStorage(ObjectStorage):
    """Storage backed by a Google Cloud Storage bucket."""

    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_DELAY = 2.0

    def __init__(
        self,
        bucket: Optional[str] = None,
        project_id: Optional[str] = None,
        client=None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        **kwargs,
    ) -> None:
        """Initialize the GCS storage.

        Args:
            bucket: Bucket name (with or without ``gs://``). Defaults to
                STORYREEL_GCS_BUCKET.
            project_id: Google Cloud project ID. Defaults to GOOGLE_CLOUD_PROJECT.
            client: Optional preconfigured ``google.cloud.storage.Client``.
            max_retries: Download attempts for transient errors.
            retry_delay: Base delay between retries (exponential backoff).
        """
        super().__init__(**kwargs)
        bucket_name = (bucket or config.gcs_bucket).replace("gs://", "").rstrip("/")
        if not bucket_name:
            raise ValueError("STORYREEL_GCS_BUCKET not set")

        self._bucket_name = bucket_name
        self._project_id = project_id or config.google_cloud_project
        self._max_retries = max_retries
        self._retry_delay = retry_delay

        if client is None:
            from google.cloud import storage

            client = storage.Client(project=self._project_id)
        self._client = client
        self._bucket = client.bucket(bucket_name)
        logger.info(f"Using GCS bucket {bucket_name}")

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    def _blob_name(self, ref: str) -> str:
        if ref.startswith("gs://"):
            parts = ref[5:].split("/", 1)
            if len(parts) != 2 or not parts[1]:
                raise NotFoundError(ref, f"Invalid GCS URI format: {ref}")
            if parts[0] != self._bucket_name:
                raise NotFoundError(ref, f"GCS URI {ref} is outside bucket {self._bucket_name}")
            return parts[1]
        return ref

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        blob = self._bucket.blob(self._blob_name(path))
        blob.upload_from_string(data, content_type=content_type or "application/octet-stream")
        uri = f"gs://{self._bucket_name}/{blob.name}"
        logger.debug(f"Uploaded {len(data)} bytes to {uri}")
        return uri

    def _fetch_stored(self, ref: str) -> bytes:
        blob_name = self._blob_name(ref)

        for attempt in range(self._max_retries):
            try:
                return self._bucket.blob(blob_name).download_as_bytes()

            except google_exceptions.NotFound as e:
                raise NotFoundError(ref) from e

            except google_exceptions.GoogleAPICallError as e:
                if attempt == self._max_retries - 1:
                    raise NotFoundError(ref, f"Asset unavailable: {ref} ({e})") from e
                delay = self._retry_delay * (2**attempt)
                logger.warning(
                    f"Download failed (attempt {attempt + 1}): {e}. Retrying in {delay}s..."
                )
                time.sleep(delay)

        raise NotFoundError(ref)

    def signed_url(self, ref: str, expiration: timedelta = timedelta(hours=1)) -> str:
        """Return a V4 signed GET URL for a stored object."""
        blob = self._bucket.blob(self._blob_name(ref))
        return blob.generate_signed_url(version="v4", expiration=expiration, method="GET")


def create_storage() -> ObjectStorage:
    """Build the storage backend selected by configuration."""
    config.validate_storage_required()
    if config.storage_backend == "gcs":
        return GCSStorage()
    return LocalStorage()
