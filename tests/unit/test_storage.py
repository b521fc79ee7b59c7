"""Contract tests shared by both storage backends, plus backend specifics."""

import uuid

import pytest
from botocore.exceptions import EndpointConnectionError

from photo_pipeline.core.config import PipelineSettings
from photo_pipeline.core.exceptions import (
    ConfigurationError,
    InvalidKeyError,
    NotFoundError,
    StorageError,
    TransientStorageError,
)
from photo_pipeline.storage import (
    FilesystemStorageAdapter,
    S3StorageAdapter,
    create_storage_adapter,
    delete_photo_files,
    derivative_key,
    find_original_key,
    get_storage_adapter,
    normalize_prefix,
    original_key,
    reset_storage_adapter,
    validate_key,
)
from photo_pipeline.testing.fakes import FakeS3Client, client_error

BUCKET = "photos"


@pytest.fixture
def fake_s3() -> FakeS3Client:
    client = FakeS3Client()
    client.create_bucket(BUCKET)
    return client


@pytest.fixture(params=["filesystem", "s3"])
def storage(request, tmp_path, fake_s3):
    if request.param == "filesystem":
        return FilesystemStorageAdapter(tmp_path / "store")
    return S3StorageAdapter(BUCKET, client_factory=fake_s3.client_factory())


def original_for(photo_id: str) -> str:
    return f"originals/{photo_id}/original.jpg"


class TestStorageContract:
    """Behaviour every backend must share."""

    @pytest.mark.asyncio
    async def test_save_then_get_returns_same_bytes(self, storage, photo_id):
        """Test a written key reads back byte for byte."""
        key = original_for(photo_id)
        await storage.save_file(key, b"jpeg-bytes", "image/jpeg")

        assert await storage.get_file(key) == b"jpeg-bytes"

    @pytest.mark.asyncio
    async def test_save_overwrites_existing_key(self, storage, photo_id):
        """Test writing an existing key replaces its content."""
        key = derivative_key(photo_id, "300w.webp")
        await storage.save_file(key, b"first", "image/webp")
        await storage.save_file(key, b"second", "image/webp")

        assert await storage.get_file(key) == b"second"

    @pytest.mark.asyncio
    async def test_get_missing_key_raises_not_found(self, storage, photo_id):
        """Test a missing key raises NotFoundError carrying the key."""
        key = original_for(photo_id)

        with pytest.raises(NotFoundError, match="File not found") as exc_info:
            await storage.get_file(key)

        assert exc_info.value.key == key

    @pytest.mark.asyncio
    async def test_stream_missing_key_fails_before_first_chunk(self, storage, photo_id):
        """Test opening a stream on a missing key raises immediately."""
        with pytest.raises(NotFoundError):
            await storage.get_file_stream(original_for(photo_id))

    @pytest.mark.asyncio
    async def test_stream_yields_full_content(self, storage, photo_id):
        """Test streamed chunks reassemble into the stored bytes."""
        key = original_for(photo_id)
        payload = bytes(range(256)) * 1024
        await storage.save_file(key, payload, "image/jpeg")

        stream = await storage.get_file_stream(key)
        chunks = [chunk async for chunk in stream]

        assert b"".join(chunks) == payload

    @pytest.mark.asyncio
    async def test_file_exists(self, storage, photo_id):
        """Test existence checks for present and absent keys."""
        key = original_for(photo_id)
        assert await storage.file_exists(key) is False

        await storage.save_file(key, b"x", "image/jpeg")

        assert await storage.file_exists(key) is True

    @pytest.mark.asyncio
    async def test_list_files_is_recursive_relative_and_sorted(self, storage, photo_id):
        """Test listing returns root-relative keys in sorted order."""
        keys = [
            derivative_key(photo_id, "600w.webp"),
            derivative_key(photo_id, "300w.avif"),
            derivative_key(photo_id, "300w.webp"),
            f"misc/{photo_id}/nested/deep.bin",
        ]
        for key in keys:
            await storage.save_file(key, b"data", "application/octet-stream")

        assert await storage.list_files(f"processed/{photo_id}") == sorted(keys[:3])
        assert await storage.list_files("misc") == [f"misc/{photo_id}/nested/deep.bin"]

    @pytest.mark.asyncio
    async def test_list_files_absent_prefix_is_empty(self, storage, photo_id):
        """Test an unknown prefix lists nothing instead of failing."""
        assert await storage.list_files(f"processed/{photo_id}") == []

    @pytest.mark.asyncio
    async def test_prefix_matches_whole_directory_names_only(self, storage):
        """Test ``misc/a`` does not match keys under ``misc/ab``."""
        await storage.save_file("misc/a/b.txt", b"1", "text/plain")
        await storage.save_file("misc/ab/c.txt", b"2", "text/plain")

        assert await storage.list_files("misc/a") == ["misc/a/b.txt"]
        assert await storage.list_files("misc/a/") == ["misc/a/b.txt"]

    @pytest.mark.asyncio
    async def test_prefix_naming_a_single_key(self, storage, photo_id):
        """Test a prefix equal to a key lists and deletes that key."""
        key = original_for(photo_id)
        await storage.save_file(key, b"x", "image/jpeg")

        assert await storage.list_files(key) == [key]

        await storage.delete_files(key)

        assert await storage.file_exists(key) is False

    @pytest.mark.asyncio
    async def test_empty_prefix_lists_everything(self, storage, photo_id):
        """Test the empty prefix covers the whole store."""
        await storage.save_file(original_for(photo_id), b"x", "image/jpeg")
        await storage.save_file(derivative_key(photo_id, "300w.webp"), b"y", "image/webp")

        assert await storage.list_files("") == [
            original_for(photo_id),
            derivative_key(photo_id, "300w.webp"),
        ]

    @pytest.mark.asyncio
    async def test_delete_files_removes_only_the_prefix(self, storage, photo_id):
        """Test prefix deletion leaves sibling namespaces intact."""
        await storage.save_file(original_for(photo_id), b"x", "image/jpeg")
        await storage.save_file(derivative_key(photo_id, "300w.webp"), b"y", "image/webp")
        await storage.save_file(derivative_key(photo_id, "300w.avif"), b"z", "image/avif")

        await storage.delete_files(f"processed/{photo_id}")

        assert await storage.list_files(f"processed/{photo_id}") == []
        assert await storage.list_files(f"originals/{photo_id}") == [original_for(photo_id)]

    @pytest.mark.asyncio
    async def test_delete_files_absent_prefix_is_noop(self, storage, photo_id):
        """Test deleting an unknown prefix does not raise."""
        await storage.delete_files(f"processed/{photo_id}")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "key",
        [
            "",
            "/etc/passwd",
            "../escape.txt",
            "misc/../../escape.txt",
            "misc//double.txt",
            "misc/./dot.txt",
            "misc\\windows.txt",
            "misc/nul\x00.txt",
            "originals/not-a-uuid/original.jpg",
            "processed/12345/300w.webp",
        ],
    )
    async def test_invalid_keys_are_rejected(self, storage, key):
        """Test malformed and traversing keys never reach the backend."""
        with pytest.raises(InvalidKeyError):
            await storage.save_file(key, b"x", "text/plain")
        with pytest.raises(InvalidKeyError):
            await storage.get_file(key)

    @pytest.mark.asyncio
    async def test_uppercase_photo_id_is_accepted(self, storage):
        """Test UUID validation ignores case."""
        key = original_for(str(uuid.uuid4()).upper())
        await storage.save_file(key, b"x", "image/jpeg")

        assert await storage.get_file(key) == b"x"


class TestFilesystemStorageAdapter:
    """Tests specific to the local directory backend."""

    @pytest.mark.asyncio
    async def test_save_creates_intermediate_directories(self, tmp_path, photo_id):
        """Test nested keys create their parent directories."""
        adapter = FilesystemStorageAdapter(tmp_path / "store")
        key = derivative_key(photo_id, "1200w.avif")

        await adapter.save_file(key, b"avif", "image/avif")

        assert (tmp_path / "store" / "processed" / photo_id / "1200w.avif").read_bytes() == b"avif"

    @pytest.mark.asyncio
    async def test_symlink_escaping_root_is_rejected(self, tmp_path):
        """Test a key resolving outside the root through a symlink is refused."""
        root = tmp_path / "store"
        outside = tmp_path / "outside"
        root.mkdir()
        outside.mkdir()
        (outside / "secret.txt").write_bytes(b"secret")
        (root / "link").symlink_to(outside, target_is_directory=True)
        adapter = FilesystemStorageAdapter(root)

        with pytest.raises(InvalidKeyError):
            await adapter.get_file("link/secret.txt")

    @pytest.mark.asyncio
    async def test_list_files_when_root_missing(self, tmp_path):
        """Test listing a store whose root was never created."""
        adapter = FilesystemStorageAdapter(tmp_path / "missing")

        assert await adapter.list_files("") == []
        await adapter.delete_files("")


class TestS3StorageAdapter:
    """Tests specific to the S3 backend."""

    @pytest.mark.asyncio
    async def test_save_sets_content_type(self, fake_s3, photo_id):
        """Test uploads carry the given content type."""
        adapter = S3StorageAdapter(BUCKET, client_factory=fake_s3.client_factory())
        key = derivative_key(photo_id, "300w.avif")

        await adapter.save_file(key, b"avif", "image/avif")

        assert fake_s3.buckets[BUCKET][key].content_type == "image/avif"

    @pytest.mark.asyncio
    async def test_slow_read_times_out_as_transient(self, fake_s3, photo_id):
        """Test a read exceeding the timeout raises TransientStorageError."""
        key = original_for(photo_id)
        fake_s3.add_object(BUCKET, key, b"x")
        fake_s3.set_delay(0.5)
        adapter = S3StorageAdapter(
            BUCKET, client_factory=fake_s3.client_factory(), read_timeout=0.01
        )

        with pytest.raises(TransientStorageError):
            await adapter.get_file(key)

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self, fake_s3, photo_id):
        """Test endpoint failures map to TransientStorageError."""
        fake_s3.fail_operation("GetObject", EndpointConnectionError(endpoint_url="http://s3"))
        adapter = S3StorageAdapter(BUCKET, client_factory=fake_s3.client_factory())

        with pytest.raises(TransientStorageError):
            await adapter.get_file(original_for(photo_id))

    @pytest.mark.asyncio
    async def test_other_client_errors_are_storage_errors(self, fake_s3, photo_id):
        """Test a non-404 client error is neither not-found nor transient."""
        fake_s3.fail_operation("GetObject", client_error("AccessDenied", "GetObject"))
        adapter = S3StorageAdapter(BUCKET, client_factory=fake_s3.client_factory())

        with pytest.raises(StorageError) as exc_info:
            await adapter.get_file(original_for(photo_id))

        assert not isinstance(exc_info.value, (NotFoundError, TransientStorageError))

    @pytest.mark.asyncio
    async def test_list_spans_multiple_pages(self, fake_s3, photo_id):
        """Test listing follows pagination past the first page."""
        adapter = S3StorageAdapter(BUCKET, client_factory=fake_s3.client_factory())
        names = [f"{width}w.{fmt}" for width in (300, 600, 1200) for fmt in ("avif", "webp")]
        for name in names:
            await adapter.save_file(derivative_key(photo_id, name), b"x", "image/webp")

        listed = await adapter.list_files(f"processed/{photo_id}")

        assert listed == sorted(derivative_key(photo_id, name) for name in names)

    @pytest.mark.asyncio
    async def test_missing_bucket_is_storage_error(self, photo_id):
        """Test an unknown bucket surfaces as StorageError."""
        adapter = S3StorageAdapter("nope", client_factory=FakeS3Client().client_factory())

        with pytest.raises(StorageError):
            await adapter.list_files(f"processed/{photo_id}")


class TestKeyHelpers:
    """Tests for key layout helpers."""

    def test_original_key_layout(self, photo_id):
        assert original_key(photo_id, ".JPG") == f"originals/{photo_id}/original.jpg"

    def test_derivative_key_layout(self, photo_id):
        assert derivative_key(photo_id, "600w.webp") == f"processed/{photo_id}/600w.webp"

    def test_derivative_key_rejects_bad_photo_id(self):
        with pytest.raises(InvalidKeyError):
            derivative_key("not-a-uuid", "600w.webp")

    def test_validate_key_allows_other_namespaces(self):
        assert validate_key("misc/anything/here.txt") == "misc/anything/here.txt"

    @pytest.mark.parametrize(
        "prefix, expected",
        [("", ""), ("misc", "misc/"), ("misc/", "misc/"), ("misc/a", "misc/a/")],
    )
    def test_normalize_prefix(self, prefix, expected):
        assert normalize_prefix(prefix) == expected

    @pytest.mark.parametrize("prefix", ["/", "../x", "misc//a"])
    def test_normalize_prefix_rejects_malformed(self, prefix):
        with pytest.raises(InvalidKeyError):
            normalize_prefix(prefix)

    @pytest.mark.asyncio
    async def test_find_original_key(self, storage, photo_id):
        """Test the original is found whatever its extension."""
        await storage.save_file(f"originals/{photo_id}/original.heic", b"x", "image/heic")

        assert await find_original_key(storage, photo_id) == f"originals/{photo_id}/original.heic"

    @pytest.mark.asyncio
    async def test_find_original_key_missing(self, storage, photo_id):
        assert await find_original_key(storage, photo_id) is None

    @pytest.mark.asyncio
    async def test_delete_photo_files_clears_both_namespaces(self, storage, photo_id):
        """Test every file of a photo is removed and others survive."""
        other_id = str(uuid.uuid4())
        await storage.save_file(original_for(photo_id), b"x", "image/jpeg")
        await storage.save_file(derivative_key(photo_id, "300w.webp"), b"y", "image/webp")
        await storage.save_file(original_for(other_id), b"z", "image/jpeg")

        await delete_photo_files(storage, photo_id)

        assert await storage.list_files("") == [original_for(other_id)]


class TestStorageFactory:
    """Tests for backend selection."""

    def setup_method(self):
        reset_storage_adapter()

    def teardown_method(self):
        reset_storage_adapter()

    def test_filesystem_backend(self, tmp_path):
        adapter = create_storage_adapter(
            PipelineSettings(storage_backend="filesystem", storage_path=str(tmp_path))
        )
        assert isinstance(adapter, FilesystemStorageAdapter)
        assert adapter.root == tmp_path.resolve()

    def test_s3_backend(self):
        adapter = create_storage_adapter(
            PipelineSettings(storage_backend="s3", s3_bucket="my-bucket", storage_read_timeout=5)
        )
        assert isinstance(adapter, S3StorageAdapter)
        assert adapter.bucket == "my-bucket"
        assert adapter.read_timeout == 5

    def test_s3_backend_requires_bucket(self):
        with pytest.raises(ConfigurationError):
            create_storage_adapter(PipelineSettings(storage_backend="s3"))

    def test_get_storage_adapter_is_cached_until_reset(self, tmp_path):
        settings = PipelineSettings(storage_path=str(tmp_path))
        first = get_storage_adapter(settings)

        assert get_storage_adapter() is first

        reset_storage_adapter()

        assert get_storage_adapter(settings) is not first
