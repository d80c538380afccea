# =============================================================================
# Document Source — Raw Text for Uploaded Artifacts
# =============================================================================
#
# The chunking core only ever sees plain text. This module is the narrow
# seam that turns an upload into that text. Only text formats are accepted;
# binary formats (PDF, DOCX, ...) need an external extraction service and
# are rejected with UnsupportedDocumentError.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from chunkwise.config import settings
from chunkwise.errors import UnsupportedDocumentError

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = frozenset({
    ".txt", ".text", ".md", ".markdown", ".rst", ".csv", ".tsv",
    ".json", ".xml", ".html", ".htm", ".log",
})


@dataclass(frozen=True)
class SourceDocument:
    """Extracted text of one uploaded document."""

    file_id: int
    file_name: str
    text: str


def is_supported(file_name: str, content_type: str | None = None) -> bool:
    """True when text can be extracted from this file name / MIME type."""
    if Path(file_name).suffix.lower() in TEXT_EXTENSIONS:
        return True
    return bool(content_type and content_type.startswith("text/"))


def extract_text(
    file_name: str,
    content: bytes,
    content_type: str | None = None,
) -> str:
    """
    Decode an uploaded text document.

    Raises:
        UnsupportedDocumentError: For non-text formats or invalid UTF-8.
    """
    if not is_supported(file_name, content_type):
        raise UnsupportedDocumentError(
            f"Cannot extract text from '{file_name}'. "
            f"Supported extensions: {', '.join(sorted(TEXT_EXTENSIONS))}",
            file_name=file_name,
            details={"content_type": content_type},
        )

    try:
        # utf-8-sig drops a leading byte-order mark if present
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise UnsupportedDocumentError(
            f"'{file_name}' is not valid UTF-8 text",
            file_name=file_name,
        ) from exc


def upload_path(file_id: int, file_name: str) -> Path:
    """
    Where an upload is kept on disk.

    Prefixed with the document ID so two uploads named "notes.txt" never
    collide.
    """
    return Path(settings.upload_dir) / f"{file_id}_{Path(file_name).name}"


def load_document(
    file_id: int,
    file_path: str | Path,
    file_name: str | None = None,
) -> SourceDocument:
    """Read a saved upload from disk and extract its text."""
    path = Path(file_path)
    name = file_name or path.name
    text = extract_text(name, path.read_bytes())
    logger.debug("Loaded %s (%d chars) for file_id=%d", name, len(text), file_id)
    return SourceDocument(file_id=file_id, file_name=name, text=text)
