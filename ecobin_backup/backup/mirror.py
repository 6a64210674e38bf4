"""
Remote mirrors for persisted artifacts.

This module uploads artifact files to Google Cloud Storage or AWS S3.
Mirroring is best-effort: the repository logs and ignores any failure.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Union

# AWS S3
try:
    import boto3
    BOTO3_AVAILABLE = True
except ImportError:
    BOTO3_AVAILABLE = False

# Google Cloud Storage
try:
    from google.cloud import storage as gcs
    GCS_AVAILABLE = True
except ImportError:
    GCS_AVAILABLE = False

from ecobin_backup.core.exceptions import ConfigurationError, MirrorError
from ecobin_backup.models.config import MirrorConfig, MirrorProvider
from ecobin_backup.utils.helpers import format_timestamp, utcnow


logger = logging.getLogger(__name__)


class RemoteMirror(ABC):
    """Abstract base class for remote artifact sinks."""

    def __init__(self, bucket: str, prefix: str = "backups"):
        self.bucket = bucket
        self.prefix = prefix.strip("/")

    def object_key(self, artifact_id: str) -> str:
        """Remote key of an artifact, e.g. ``backups/<id>.json``."""
        if self.prefix:
            return f"{self.prefix}/{artifact_id}.json"
        return f"{artifact_id}.json"

    def object_metadata(self, artifact_id: str) -> Dict[str, str]:
        return {
            "backupId": artifact_id,
            "timestamp": format_timestamp(utcnow()),
            "type": "full_backup",
        }

    @abstractmethod
    async def upload(self, local_path: Union[str, Path], artifact_id: str) -> str:
        """
        Upload an artifact file.

        Returns:
            The remote object key

        Raises:
            MirrorError: If the upload fails
        """
        pass


class GCSMirror(RemoteMirror):
    """Google Cloud Storage mirror using google-cloud-storage."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "backups",
        project_id: Optional[str] = None,
        client: Any = None
    ):
        if client is None and not GCS_AVAILABLE:
            raise ImportError(
                "google-cloud-storage is required for GCS mirroring. "
                "Install with: pip install google-cloud-storage"
            )

        super().__init__(bucket, prefix)
        self.project_id = project_id
        self._client = client

    def _bucket(self):
        if self._client is None:
            client_params = {}
            if self.project_id:
                client_params['project'] = self.project_id
            self._client = gcs.Client(**client_params)
        return self._client.bucket(self.bucket)

    async def upload(self, local_path: Union[str, Path], artifact_id: str) -> str:
        key = self.object_key(artifact_id)

        def _upload():
            blob = self._bucket().blob(key)
            blob.metadata = self.object_metadata(artifact_id)
            blob.upload_from_filename(str(local_path), content_type="application/json")

        try:
            await asyncio.to_thread(_upload)
        except Exception as e:
            raise MirrorError(f"GCS upload of {artifact_id} failed: {str(e)}") from e

        logger.info(f"Uploaded to cloud storage: gs://{self.bucket}/{key}")
        return key


class S3Mirror(RemoteMirror):
    """AWS S3 mirror using boto3."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "backups",
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Any = None
    ):
        if client is None and not BOTO3_AVAILABLE:
            raise ImportError(
                "boto3 is required for S3 mirroring. "
                "Install with: pip install boto3"
            )

        super().__init__(bucket, prefix)
        self.region = region
        self.endpoint_url = endpoint_url
        self._client = client

    def _s3_client(self):
        if self._client is None:
            client_params = {'service_name': 's3'}
            if self.region:
                client_params['region_name'] = self.region
            if self.endpoint_url:
                client_params['endpoint_url'] = self.endpoint_url
            self._client = boto3.Session().client(**client_params)
        return self._client

    async def upload(self, local_path: Union[str, Path], artifact_id: str) -> str:
        key = self.object_key(artifact_id)

        try:
            await asyncio.to_thread(
                self._s3_client().upload_file,
                str(local_path),
                self.bucket,
                key,
                ExtraArgs={
                    'ContentType': 'application/json',
                    'Metadata': self.object_metadata(artifact_id),
                }
            )
        except Exception as e:
            raise MirrorError(f"S3 upload of {artifact_id} failed: {str(e)}") from e

        logger.info(f"Uploaded to cloud storage: s3://{self.bucket}/{key}")
        return key


def build_mirror(config: MirrorConfig) -> Optional[RemoteMirror]:
    """Create the mirror described by config, or None when mirroring is off."""
    if config.provider == MirrorProvider.NONE:
        return None
    if not config.bucket:
        raise ConfigurationError(f"Bucket is required for {config.provider.value} mirror")

    if config.provider == MirrorProvider.GCS:
        return GCSMirror(config.bucket, prefix=config.prefix)
    return S3Mirror(
        config.bucket,
        prefix=config.prefix,
        region=config.region,
        endpoint_url=config.endpoint_url
    )
