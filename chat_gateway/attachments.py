from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .models import FileAttachment, FileValidationWarning


MB = 1024 * 1024
MAX_FILES_PER_MESSAGE = 10
MAX_INDIVIDUAL_SIZE = 10 * MB
MAX_TOTAL_SIZE = 50 * MB

ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {
        # images
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/bmp",
        "image/svg+xml",
        "image/tiff",
        "image/avif",
        "image/heic",
        "image/heif",
        # pdf
        "application/pdf",
        # text
        "text/plain",
        "text/csv",
        "text/markdown",
        "text/rtf",
        "application/rtf",
        "application/x-subrip",
        "text/x-subrip",
        # microsoft office
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/msword",
        "application/vnd.ms-excel",
        "application/vnd.ms-powerpoint",
        "application/vnd.ms-excel.sheet.macroEnabled.12",
        # opendocument
        "application/vnd.oasis.opendocument.text",
        "application/vnd.oasis.opendocument.spreadsheet",
        "application/vnd.oasis.opendocument.presentation",
    }
)

GENERAL_WARNING_NAME = "general"


@dataclass
class AttachmentValidation:
    files: list[FileAttachment] = field(default_factory=list)
    warnings: list[FileValidationWarning] = field(default_factory=list)


def _megabytes(size: int) -> str:
    return f"{size / MB:.1f}"


def _limit_mb(limit: int) -> str:
    return f"{limit // MB}MB"


def _check_file(file: FileAttachment) -> str | None:
    if file.size > MAX_INDIVIDUAL_SIZE:
        return (
            f"File size {_megabytes(file.size)}MB exceeds limit of "
            f"{_limit_mb(MAX_INDIVIDUAL_SIZE)}"
        )
    if file.mime_type not in ALLOWED_MIME_TYPES:
        return f'File type "{file.mime_type}" is not supported'
    if file.size <= 0:
        return "File is empty"
    return None


def validate_attachments(files: Sequence[FileAttachment]) -> AttachmentValidation:
    """Trim ``files`` to the attachment policy, keeping input order.

    Stages run in order: per-file size/type checks, the per-message count
    cap, then the aggregate size budget. Nothing here raises; every dropped
    file is reported as a warning instead.
    """
    result = AttachmentValidation()

    accepted: list[FileAttachment] = []
    for file in files:
        reason = _check_file(file)
        if reason is None:
            accepted.append(file)
        else:
            result.warnings.append(FileValidationWarning(file_name=file.name, reason=reason))

    if len(accepted) > MAX_FILES_PER_MESSAGE:
        excess = len(accepted) - MAX_FILES_PER_MESSAGE
        accepted = accepted[:MAX_FILES_PER_MESSAGE]
        result.warnings.append(
            FileValidationWarning(
                file_name=GENERAL_WARNING_NAME,
                reason=(
                    f"{excess} file(s) exceeded the limit of {MAX_FILES_PER_MESSAGE} "
                    "files per message and were skipped"
                ),
            )
        )

    remaining = MAX_TOTAL_SIZE
    for file in accepted:
        if file.size <= remaining:
            result.files.append(file)
            remaining -= file.size
        else:
            result.warnings.append(
                FileValidationWarning(
                    file_name=file.name,
                    reason=f"Skipped due to total size limit ({_limit_mb(MAX_TOTAL_SIZE)})",
                )
            )

    return result
