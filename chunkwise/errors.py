"""Exception hierarchy for the chunking and retrieval service."""

from __future__ import annotations

from typing import Any


class ChunkwiseError(Exception):
    """Base exception for all service errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "status_code": self.status_code,
                "details": self.details,
            }
        }


class ConfigurationError(ChunkwiseError):
    """Invalid segmenter parameters or an unknown strategy name."""

    def __init__(
        self,
        message: str = "Invalid chunking configuration",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=400,
            code="CONFIGURATION_ERROR",
            details=details,
        )


class EmbeddingProviderError(ChunkwiseError):
    """An embedding call failed (network, auth, or provider-side)."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        model: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(
            message=message,
            status_code=502,
            code="EMBEDDING_ERROR",
            details=error_details,
        )


class StoreUnavailableError(ChunkwiseError):
    """The chunk store could not complete an operation."""

    def __init__(
        self,
        message: str = "Chunk store unavailable",
        backend: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        error_details = details or {}
        if backend:
            error_details["backend"] = backend
        super().__init__(
            message=message,
            status_code=503,
            code="STORE_UNAVAILABLE",
            details=error_details,
        )


class VectorFormatError(ChunkwiseError):
    """Encoded embedding bytes do not describe a float32 vector."""

    def __init__(
        self,
        message: str = "Malformed embedding bytes",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=422,
            code="VECTOR_FORMAT_ERROR",
            details=details,
        )


class UnsupportedDocumentError(ChunkwiseError):
    """No text could be extracted from an uploaded artifact."""

    def __init__(
        self,
        message: str = "Unsupported document type",
        file_name: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        error_details = details or {}
        if file_name:
            error_details["file_name"] = file_name
        super().__init__(
            message=message,
            status_code=415,
            code="UNSUPPORTED_DOCUMENT",
            details=error_details,
        )
