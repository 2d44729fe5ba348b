"""Text extraction for attachments a provider cannot read natively.

The extracted text is folded into the prompt, so it is bounded with the
length-based token estimate rather than a real tokenizer.
"""

from __future__ import annotations

import asyncio
import io
import logging
import mimetypes
import os
from typing import Protocol

from markitdown import MarkItDown, MarkItDownException, StreamInfo

from .budget import truncate_to_tokens
from .models import FileAttachment


logger = logging.getLogger(__name__)

TEXT_MIME_TYPES = frozenset(
    {
        "text/plain",
        "text/csv",
        "text/markdown",
        "text/x-subrip",
        "application/x-subrip",
    }
)


class Extractor(Protocol):
    async def extract(self, file: FileAttachment, data: bytes) -> str:
        ...


def format_file_block(name: str, body: str) -> str:
    return f"[Attached file: {name}]\n{body}\n[End of file: {name}]"


class TextExtractor:
    def __init__(self, max_tokens: int = 50000, converter: MarkItDown | None = None) -> None:
        self._max_tokens = max_tokens
        self._converter = converter

    def _get_converter(self) -> MarkItDown:
        if self._converter is None:
            self._converter = MarkItDown()
        return self._converter

    def _convert(self, file: FileAttachment, data: bytes) -> str:
        extension = os.path.splitext(file.name)[1] or mimetypes.guess_extension(file.mime_type) or None
        info = StreamInfo(mimetype=file.mime_type, extension=extension, filename=file.name)
        result = self._get_converter().convert_stream(io.BytesIO(data), stream_info=info)
        return result.text_content or ""

    async def extract(self, file: FileAttachment, data: bytes) -> str:
        if file.is_image:
            return f"[Attached image: {file.name}]"

        if file.mime_type in TEXT_MIME_TYPES:
            text = data.decode("utf-8", errors="replace")
        else:
            try:
                text = await asyncio.to_thread(self._convert, file, data)
            except MarkItDownException as exc:
                logger.warning("text extraction failed for %s (%s): %s", file.name, file.mime_type, exc)
                return f"[Attached file: {file.name} - content could not be extracted]"

        text, truncated = truncate_to_tokens(text.strip(), self._max_tokens)
        if truncated:
            logger.info("extracted text for %s truncated to %d tokens", file.name, self._max_tokens)
        return format_file_block(file.name, text)
