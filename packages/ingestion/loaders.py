from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Protocol, runtime_checkable

import httpx
from bs4 import BeautifulSoup

from rag_core.exceptions import UpstreamServiceError
from rag_core.models import Document

if TYPE_CHECKING:
    from docling.document_converter import DocumentConverter

_log = logging.getLogger(__name__)

_NON_PRINTABLE = re.compile(r"[^\x20-\x7E]+")


@runtime_checkable
class DocumentSource(Protocol):
    def load(self) -> List[Document]:
        ...


class TextFileLoader:
    """Load a plain text or markdown file as one document."""

    def __init__(self, path: Path, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.encoding = encoding

    def load(self) -> List[Document]:
        if not self.path.is_file():
            raise FileNotFoundError(f"Text file not found: {self.path}")
        content = self.path.read_text(encoding=self.encoding)
        _log.info("Loaded %s (%d chars)", self.path, len(content))
        return [Document(content=content, metadata={"source": str(self.path)})]


def _build_converter() -> "DocumentConverter":
    """Create a Docling PDF converter; Docling is imported only when PDFs are loaded."""
    from docling.backend.docling_parse_v4_backend import DoclingParseV4DocumentBackend
    from docling.datamodel.base_models import InputFormat
    from docling.datamodel.pipeline_options import PdfPipelineOptions
    from docling.document_converter import DocumentConverter, PdfFormatOption

    pipeline_options = PdfPipelineOptions(
        do_ocr=True,
        do_table_structure=True,
    )
    pdf_format_option = PdfFormatOption(
        pipeline_options=pipeline_options,
        backend=DoclingParseV4DocumentBackend,
    )
    return DocumentConverter(format_options={InputFormat.PDF: pdf_format_option})


class PdfLoader:
    """
    Convert a PDF with Docling and load its markdown export as one document.

    A converter can be passed in to share one between several files.
    """

    def __init__(self, path: Path, converter: Optional["DocumentConverter"] = None) -> None:
        self.path = Path(path)
        self._converter = converter

    def load(self) -> List[Document]:
        if not self.path.is_file():
            raise FileNotFoundError(f"PDF file not found: {self.path}")

        converter = self._converter or _build_converter()
        _log.info("Converting PDF with Docling: %s", self.path)
        result = converter.convert(self.path)
        if result.status.value != "success":
            raise UpstreamServiceError(
                f"Docling conversion failed: {result.status.value}",
                service="docling",
                details={"path": str(self.path)},
            )

        content = result.document.export_to_markdown()
        return [Document(content=content, metadata={"source": str(self.path)})]


class WebPageLoader:
    """
    Fetch a web page and keep the visible body text.

    Script and style elements are dropped and every run of characters outside
    printable ASCII is removed.
    """

    def __init__(self, url: str, client: Optional[httpx.Client] = None, timeout: float = 30.0) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    def _fetch(self) -> str:
        try:
            if self._client is not None:
                resp = self._client.get(self.url, timeout=self.timeout, follow_redirects=True)
            else:
                with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                    resp = client.get(self.url)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamServiceError(f"Failed to fetch {self.url}: {exc}", service="web") from exc
        return resp.text

    def load(self) -> List[Document]:
        soup = BeautifulSoup(self._fetch(), "html.parser")
        for tag in soup(["script", "style"]):
            tag.decompose()

        body = soup.body or soup
        text = _NON_PRINTABLE.sub("", body.get_text(" "))
        _log.info("Loaded %s (%d chars)", self.url, len(text))
        return [Document(content=text, metadata={"source": self.url})]


TEXT_SUFFIXES = (".txt", ".md")
PDF_SUFFIXES = (".pdf",)


class DirectoryLoader:
    """Load every supported file under a directory, in sorted path order."""

    def __init__(self, root: Path, recursive: bool = True) -> None:
        self.root = Path(root)
        self.recursive = recursive

    def _iter_files(self) -> Iterable[Path]:
        pattern = "**/*" if self.recursive else "*"
        for path in sorted(self.root.glob(pattern)):
            if path.is_file() and path.suffix.lower() in TEXT_SUFFIXES + PDF_SUFFIXES:
                yield path

    def load(self) -> List[Document]:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Source directory does not exist: {self.root}")

        files = list(self._iter_files())
        if not files:
            _log.warning("No supported files found under %s", self.root)
            return []

        converter = None
        documents: List[Document] = []
        for idx, path in enumerate(files, start=1):
            _log.info("Loading %d/%d: %s", idx, len(files), path)
            if path.suffix.lower() in PDF_SUFFIXES:
                if converter is None:
                    converter = _build_converter()
                documents.extend(PdfLoader(path, converter=converter).load())
            else:
                documents.extend(TextFileLoader(path).load())
        return documents


__all__ = [
    "DocumentSource",
    "TextFileLoader",
    "PdfLoader",
    "WebPageLoader",
    "DirectoryLoader",
]
