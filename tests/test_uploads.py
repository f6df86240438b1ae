import pytest

from bailbonds.uploads import (
    DOCUMENT_POLICY,
    MB,
    PHOTO_POLICY,
    UploadError,
    remove_files,
    save_upload,
    unique_filename,
)


def test_document_policy() -> None:
    DOCUMENT_POLICY.check_count(10)
    DOCUMENT_POLICY.check_file("a.pdf", "application/pdf", 10 * MB)
    with pytest.raises(UploadError, match="No files uploaded"):
        DOCUMENT_POLICY.check_count(0)
    with pytest.raises(UploadError, match="Too many files"):
        DOCUMENT_POLICY.check_count(11)
    with pytest.raises(UploadError, match="Invalid file type"):
        DOCUMENT_POLICY.check_file("a.exe", "application/x-msdownload", 10)
    with pytest.raises(UploadError, match="too large. Maximum size is 10MB"):
        DOCUMENT_POLICY.check_file("big.pdf", "application/pdf", 10 * MB + 1)


def test_photo_policy() -> None:
    PHOTO_POLICY.check_file("me.webp", "IMAGE/WEBP", 1024)
    with pytest.raises(UploadError, match="Only image files"):
        PHOTO_POLICY.check_file("me.pdf", "application/pdf", 1024)
    with pytest.raises(UploadError, match="Maximum size is 5MB"):
        PHOTO_POLICY.check_file("me.png", "image/png", 5 * MB + 1)
    with pytest.raises(UploadError):
        PHOTO_POLICY.check_file("me.png", None, 10)


def test_unique_filename() -> None:
    name = unique_filename("Scan Of License.PDF", now_ms=1700000000000)
    assert name.startswith("1700000000000_")
    assert name.endswith(".pdf")
    assert unique_filename("../../etc/passwd", now_ms=1) != unique_filename("../../etc/passwd", now_ms=1)
    assert "." not in unique_filename("noext", now_ms=1)
    assert "/" not in unique_filename("weird.p/df", now_ms=1)


def test_save_and_remove(tmp_path) -> None:
    saved = save_upload(tmp_path / "uploads", "note.txt", b"hello")
    assert saved.read_bytes() == b"hello"
    assert saved.parent == tmp_path / "uploads"
    missing = tmp_path / "uploads" / "missing.txt"
    assert remove_files([saved, missing]) == [saved]
    assert not saved.exists()
