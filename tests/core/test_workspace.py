"""Tests for the per-attempt temporary workspace."""

from unittest.mock import patch

import pytest

from photo_pipeline.core.exceptions import InvalidKeyError
from photo_pipeline.core.workspace import TempWorkspace


class TestTempWorkspace:
    """Tests for TempWorkspace."""

    def test_path_is_scoped_to_photo_and_attempt(self, tmp_path, photo_id):
        workspace = TempWorkspace(tmp_path, photo_id, attempt=3)

        assert workspace.path == tmp_path / f"photo-worker-{photo_id}-3"

    def test_attempts_never_share_a_directory(self, tmp_path, photo_id):
        assert TempWorkspace(tmp_path, photo_id, 1).path != TempWorkspace(tmp_path, photo_id, 2).path

    @pytest.mark.asyncio
    async def test_directory_exists_inside_and_is_removed_after(self, tmp_path, photo_id):
        async with TempWorkspace(tmp_path, photo_id) as workspace:
            workspace.file_path("original.jpg").write_bytes(b"x")
            assert workspace.path.is_dir()

        assert not workspace.path.exists()

    @pytest.mark.asyncio
    async def test_directory_is_removed_when_body_raises(self, tmp_path, photo_id):
        workspace = TempWorkspace(tmp_path, photo_id)

        with pytest.raises(RuntimeError):
            async with workspace:
                raise RuntimeError("encoder crashed")

        assert not workspace.path.exists()

    @pytest.mark.asyncio
    async def test_stale_directory_from_crashed_run_is_replaced(self, tmp_path, photo_id):
        stale = tmp_path / f"photo-worker-{photo_id}-1"
        stale.mkdir()
        (stale / "300w.webp").write_bytes(b"leftover")

        async with TempWorkspace(tmp_path, photo_id) as workspace:
            assert list(workspace.path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_cleanup_failure_is_not_raised(self, tmp_path, photo_id):
        """Test a failing delete is logged and swallowed."""
        workspace = TempWorkspace(tmp_path, photo_id)

        with patch("photo_pipeline.core.workspace.shutil.rmtree", side_effect=OSError("busy")):
            async with workspace:
                pass

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_mask_job_error(self, tmp_path, photo_id):
        workspace = TempWorkspace(tmp_path, photo_id)

        with patch("photo_pipeline.core.workspace.shutil.rmtree", side_effect=OSError("busy")):
            with pytest.raises(ValueError, match="job failed"):
                async with workspace:
                    raise ValueError("job failed")

    @pytest.mark.parametrize("bad_id", ["x/../../victim", "..", "", "not-a-uuid"])
    def test_rejects_ids_that_are_not_photo_ids(self, tmp_path, bad_id):
        """Test the workspace path can never leave the temp root."""
        with pytest.raises(InvalidKeyError):
            TempWorkspace(tmp_path, bad_id)

        assert list(tmp_path.iterdir()) == []
