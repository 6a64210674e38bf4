"""
Tests for the remote artifact mirrors.
"""

from unittest.mock import MagicMock

import pytest

from ecobin_backup.backup.mirror import GCSMirror, S3Mirror, build_mirror
from ecobin_backup.core.exceptions import MirrorError
from ecobin_backup.models.config import MirrorConfig

BACKUP_ID = "backup_daily_2024-01-15T02-00-00-000Z"


@pytest.fixture
def artifact_file(temp_dir):
    path = temp_dir / f"{BACKUP_ID}.json"
    path.write_text('{"metadata": {}}', encoding="utf-8")
    return path


class TestS3Mirror:
    """Test cases for S3Mirror."""

    @pytest.mark.asyncio
    async def test_upload(self, artifact_file):
        client = MagicMock()
        mirror = S3Mirror("ecobin-backups", client=client)

        key = await mirror.upload(artifact_file, BACKUP_ID)

        assert key == f"backups/{BACKUP_ID}.json"
        args, kwargs = client.upload_file.call_args
        assert args == (str(artifact_file), "ecobin-backups", key)
        assert kwargs["ExtraArgs"]["ContentType"] == "application/json"
        assert kwargs["ExtraArgs"]["Metadata"]["backupId"] == BACKUP_ID

    @pytest.mark.asyncio
    async def test_upload_failure(self, artifact_file):
        client = MagicMock()
        client.upload_file.side_effect = RuntimeError("access denied")
        mirror = S3Mirror("ecobin-backups", client=client)

        with pytest.raises(MirrorError, match="access denied"):
            await mirror.upload(artifact_file, BACKUP_ID)

    def test_custom_prefix(self):
        mirror = S3Mirror("ecobin-backups", prefix="/prod/archive/", client=MagicMock())
        assert mirror.object_key(BACKUP_ID) == f"prod/archive/{BACKUP_ID}.json"

    def test_empty_prefix(self):
        mirror = S3Mirror("ecobin-backups", prefix="", client=MagicMock())
        assert mirror.object_key(BACKUP_ID) == f"{BACKUP_ID}.json"


class TestGCSMirror:
    """Test cases for GCSMirror."""

    @pytest.mark.asyncio
    async def test_upload(self, artifact_file):
        client = MagicMock()
        blob = client.bucket.return_value.blob.return_value
        mirror = GCSMirror("ecobin-backups", client=client)

        key = await mirror.upload(artifact_file, BACKUP_ID)

        client.bucket.assert_called_with("ecobin-backups")
        client.bucket.return_value.blob.assert_called_with(key)
        blob.upload_from_filename.assert_called_once_with(str(artifact_file), content_type="application/json")
        assert blob.metadata["backupId"] == BACKUP_ID

    @pytest.mark.asyncio
    async def test_upload_failure(self, artifact_file):
        client = MagicMock()
        client.bucket.return_value.blob.return_value.upload_from_filename.side_effect = OSError("quota")
        mirror = GCSMirror("ecobin-backups", client=client)

        with pytest.raises(MirrorError):
            await mirror.upload(artifact_file, BACKUP_ID)


class TestBuildMirror:
    """Test cases for build_mirror."""

    def test_none(self):
        assert build_mirror(MirrorConfig()) is None

    def test_s3(self):
        pytest.importorskip("boto3")
        mirror = build_mirror(MirrorConfig(provider="s3", bucket="ecobin-backups", region="eu-west-1"))

        assert isinstance(mirror, S3Mirror)
        assert mirror.region == "eu-west-1"

    def test_gcs(self):
        pytest.importorskip("google.cloud.storage")
        mirror = build_mirror(MirrorConfig(provider="gcs", bucket="ecobin-backups", prefix="nightly"))

        assert isinstance(mirror, GCSMirror)
        assert mirror.prefix == "nightly"
