from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, List, Optional, Sequence

logger = logging.getLogger("bailbonds.uploads")

MB = 1024 * 1024


class UploadError(ValueError):
    """Raised when an upload breaks its policy. The message is shown to the user."""


@dataclass(frozen=True)
class UploadPolicy:
    name: str
    mime_types: FrozenSet[str]
    max_bytes: int
    max_files: int
    type_message: str

    def check_count(self, count: int) -> None:
        if count == 0:
            raise UploadError("No files uploaded")
        if count > self.max_files:
            raise UploadError(f"Too many files. Maximum is {self.max_files}.")

    def check_file(self, filename: str, mime_type: Optional[str], size: int) -> None:
        if (mime_type or "").lower() not in self.mime_types:
            raise UploadError(self.type_message)
        if size > self.max_bytes:
            raise UploadError(
                f"File {filename} is too large. Maximum size is {self.max_bytes // MB}MB."
            )


DOCUMENT_POLICY = UploadPolicy(
    name="document",
    mime_types=frozenset(
        {
            "application/pdf",
            "image/jpeg",
            "image/jpg",
            "image/png",
            "image/gif",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "text/plain",
        }
    ),
    max_bytes=10 * MB,
    max_files=10,
    type_message="Invalid file type. Only PDF, images, Word documents, and text files are allowed.",
)

PHOTO_POLICY = UploadPolicy(
    name="photo",
    mime_types=frozenset({"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}),
    max_bytes=5 * MB,
    max_files=1,
    type_message="Only image files are allowed for check-in photos.",
)


def unique_filename(original: str, now_ms: Optional[int] = None) -> str:
    suffix = Path(original or "").suffix.lower()
    if not suffix[1:].isalnum():
        suffix = ""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{stamp}_{secrets.token_hex(6)}{suffix}"


def save_upload(directory: Path, original: str, content: bytes) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / unique_filename(original)
    with path.open("wb") as handle:
        handle.write(content)
    logger.info("Stored upload %s (%s bytes) as %s", original, len(content), path.name)
    return path


def remove_files(paths: Sequence[Path]) -> List[Path]:
    removed: List[Path] = []
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Could not remove upload %s: %s", path, exc)
            continue
        removed.append(path)
    return removed
