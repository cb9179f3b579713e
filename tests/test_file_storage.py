import pytest

from eresidency.core.exceptions import NotFoundError, UploadRejectedError, ValidationError
from eresidency.infrastructure.storage.file_storage import (
    FileStorage,
    build_storage_name,
    normalized_extension,
    validate_upload,
)

pytestmark = pytest.mark.anyio

MIB = 1024 * 1024


def test_rejects_file_over_ten_mib():
    result = validate_upload("scan.pdf", "application/pdf", 15 * MIB)
    assert result.accepted is False
    assert "exceeds" in result.reason


def test_rejects_executable_mime_type():
    result = validate_upload("setup.exe", "application/x-msdownload", 1024)
    assert result.accepted is False
    assert "unsupported" in result.reason


@pytest.mark.parametrize(
    "filename,mime_type",
    [
        ("passport.pdf", "application/pdf"),
        ("photo.jpg", "image/jpeg"),
        ("photo.PNG", "image/png"),
        ("letter.doc", "application/msword"),
        (
            "letter.docx",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ),
    ],
)
def test_accepts_allowed_types(filename, mime_type):
    assert validate_upload(filename, mime_type, 10 * MIB).accepted is True


def test_rejects_empty_and_unnamed_files():
    assert validate_upload("empty.pdf", "application/pdf", 0).accepted is False
    assert validate_upload("", "application/pdf", 10).accepted is False


def test_storage_name_ignores_client_path():
    name = build_storage_name("passport", "../../etc/Secret.PDF")
    assert name.startswith("passport-")
    assert name.endswith(".pdf")
    assert "/" not in name and ".." not in name


def test_storage_names_do_not_collide():
    names = {build_storage_name("photo", "me.png") for _ in range(50)}
    assert len(names) == 50


def test_normalized_extension_drops_unusable_suffixes():
    assert normalized_extension("archive.tar.GZ") == ".gz"
    assert normalized_extension("no_extension") == ""
    assert normalized_extension("weird.p d f") == ""


async def test_store_read_and_idempotent_delete(tmp_path):
    storage = FileStorage(str(tmp_path), "/uploads/")
    storage.ensure_directory()

    stored = await storage.store_upload("passport", "My Passport.pdf", "application/pdf", b"%PDF-1.4")

    assert stored.display_name == "My Passport.pdf"
    assert stored.url == f"/uploads/{stored.storage_path}"
    assert stored.size == 8
    assert await storage.read(stored.storage_path) == b"%PDF-1.4"

    assert await storage.delete(stored.storage_path) is True
    assert await storage.delete(stored.storage_path) is False
    with pytest.raises(NotFoundError):
        await storage.read(stored.storage_path)


async def test_store_upload_enforces_policy(tmp_path):
    storage = FileStorage(str(tmp_path), "/uploads")
    storage.ensure_directory()

    with pytest.raises(UploadRejectedError):
        await storage.store_upload("passport", "tool.exe", "application/x-msdownload", b"MZ")
    assert list(tmp_path.iterdir()) == []


def test_resolve_rejects_paths_outside_root(tmp_path):
    storage = FileStorage(str(tmp_path), "/uploads")
    with pytest.raises(ValidationError):
        storage.resolve("../outside.pdf")
    with pytest.raises(ValidationError):
        storage.resolve("nested/file.pdf")
