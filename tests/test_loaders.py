"""
Tests for document loaders.

Validates:
1. Text files and directories load in a stable order with source metadata
2. Web pages keep only visible, printable body text
3. PDF conversion through an injected Docling converter
"""

from types import SimpleNamespace

import httpx
import pytest

from ingestion import loaders
from ingestion.loaders import DirectoryLoader, DocumentSource, PdfLoader, TextFileLoader, WebPageLoader
from rag_core.exceptions import UpstreamServiceError


class FakeConverter:
    """Stands in for docling's DocumentConverter."""

    def __init__(self, status: str = "success", markdown: str = "# Title\n\nBody"):
        self.status = status
        self.markdown = markdown
        self.converted = []

    def convert(self, path):
        self.converted.append(path)
        document = SimpleNamespace(export_to_markdown=lambda: self.markdown)
        return SimpleNamespace(status=SimpleNamespace(value=self.status), document=document)


class TestTextAndDirectory:
    """File-system loaders."""

    def test_text_file(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("some notes", encoding="utf-8")

        documents = TextFileLoader(path).load()

        assert len(documents) == 1
        assert documents[0].content == "some notes"
        assert documents[0].metadata == {"source": str(path)}

    def test_missing_text_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TextFileLoader(tmp_path / "missing.txt").load()

    def test_directory_loads_supported_files_sorted(self, tmp_path, monkeypatch):
        # Arrange
        (tmp_path / "b.md").write_text("markdown", encoding="utf-8")
        (tmp_path / "a.txt").write_text("text", encoding="utf-8")
        (tmp_path / "data.csv").write_text("x,y", encoding="utf-8")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "c.pdf").write_bytes(b"%PDF-1.4")
        converter = FakeConverter(markdown="pdf text")
        monkeypatch.setattr(loaders, "_build_converter", lambda: converter)

        # Act
        documents = DirectoryLoader(tmp_path).load()

        # Assert
        assert [d.content for d in documents] == ["text", "markdown", "pdf text"]
        assert converter.converted == [tmp_path / "sub" / "c.pdf"]

    def test_non_recursive_directory(self, tmp_path):
        (tmp_path / "a.txt").write_text("top", encoding="utf-8")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "b.txt").write_text("nested", encoding="utf-8")

        documents = DirectoryLoader(tmp_path, recursive=False).load()

        assert [d.content for d in documents] == ["top"]

    def test_empty_directory(self, tmp_path):
        assert DirectoryLoader(tmp_path).load() == []

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DirectoryLoader(tmp_path / "nope").load()


class TestPdf:
    def test_markdown_export_becomes_document(self, tmp_path):
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF-1.4")

        documents = PdfLoader(path, converter=FakeConverter()).load()

        assert documents[0].content == "# Title\n\nBody"
        assert documents[0].metadata["source"] == str(path)

    def test_failed_conversion(self, tmp_path):
        path = tmp_path / "report.pdf"
        path.write_bytes(b"%PDF-1.4")

        with pytest.raises(UpstreamServiceError):
            PdfLoader(path, converter=FakeConverter(status="failure")).load()


def _html_client(html: str, status_code: int = 200) -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text=html, headers={"content-type": "text/html"})

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestWebPage:
    def test_visible_ascii_body_text(self):
        # Arrange
        html = (
            "<html><head><title>T</title><style>p {color: red}</style></head>"
            "<body><script>var x = 1;</script><p>Hello café</p><p>World</p></body></html>"
        )

        # Act
        documents = WebPageLoader("https://example.com/page", client=_html_client(html)).load()

        # Assert
        content = documents[0].content
        assert "Hello caf" in content
        assert "World" in content
        assert "var x" not in content
        assert "color" not in content
        assert "é" not in content
        assert documents[0].metadata == {"source": "https://example.com/page"}

    def test_http_error(self):
        loader = WebPageLoader("https://example.com/missing", client=_html_client("nope", status_code=404))

        with pytest.raises(UpstreamServiceError):
            loader.load()


def test_loaders_satisfy_protocol(tmp_path):
    assert isinstance(TextFileLoader(tmp_path / "a.txt"), DocumentSource)
    assert isinstance(DirectoryLoader(tmp_path), DocumentSource)
