import httpx
import pytest
from markitdown import MarkItDownException

from chat_gateway.errors import AttachmentFetchError
from chat_gateway.extraction import TextExtractor
from chat_gateway.models import FileAttachment
from chat_gateway.storage import HttpObjectStore


DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class FakeResult:
    def __init__(self, text_content):
        self.text_content = text_content


class FakeConverter:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    def convert_stream(self, stream, stream_info=None):
        self.calls.append((stream.read(), stream_info))
        if self.error is not None:
            raise self.error
        return FakeResult(self.text)


@pytest.mark.asyncio
async def test_text_files_are_decoded_directly():
    converter = FakeConverter()
    extractor = TextExtractor(converter=converter)
    file = FileAttachment(name="notes.md", type="text/markdown", size=5)

    block = await extractor.extract(file, "# Hi ✓".encode())

    assert block == "[Attached file: notes.md]\n# Hi ✓\n[End of file: notes.md]"
    assert converter.calls == []


@pytest.mark.asyncio
async def test_office_files_go_through_markitdown():
    converter = FakeConverter(text="Quarterly report\n\n| a | b |")
    extractor = TextExtractor(converter=converter)
    file = FileAttachment(name="report.docx", type=DOCX, size=4)

    block = await extractor.extract(file, b"PK\x03\x04")

    assert "Quarterly report" in block
    data, info = converter.calls[0]
    assert data == b"PK\x03\x04"
    assert info.extension == ".docx"
    assert info.mimetype == DOCX


@pytest.mark.asyncio
async def test_conversion_failure_yields_placeholder():
    extractor = TextExtractor(converter=FakeConverter(error=MarkItDownException("bad zip")))
    file = FileAttachment(name="broken.xlsx", type="application/vnd.ms-excel", size=4)

    block = await extractor.extract(file, b"junk")

    assert block == "[Attached file: broken.xlsx - content could not be extracted]"


@pytest.mark.asyncio
async def test_images_become_placeholders():
    block = await TextExtractor(converter=FakeConverter()).extract(
        FileAttachment(name="scan.tiff", type="image/tiff", size=1), b""
    )
    assert block == "[Attached image: scan.tiff]"


@pytest.mark.asyncio
async def test_long_text_is_truncated():
    extractor = TextExtractor(max_tokens=10, converter=FakeConverter())
    file = FileAttachment(name="big.txt", type="text/plain", size=1000)

    block = await extractor.extract(file, b"word " * 200)

    assert "[... content truncated due to length ...]" in block
    assert len(block) < 200


@pytest.mark.asyncio
async def test_object_store_fetch():
    def handler(request):
        if request.url.path == "/missing":
            return httpx.Response(404)
        return httpx.Response(200, content=b"bytes")

    store = HttpObjectStore(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    assert await store.fetch("https://files.test/ok") == b"bytes"
    with pytest.raises(AttachmentFetchError, match="status 404"):
        await store.fetch("https://files.test/missing")
