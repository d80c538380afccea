# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Bodies coming INTO the API. Uploads themselves are multipart and handled
# by FastAPI's UploadFile; only the JSON bodies live here.
# =============================================================================

from pydantic import BaseModel, Field


class BatchProcessRequest(BaseModel):
    """
    Request body for POST /files/batch-process.

    Example:
        {"file_ids": [1, 2, 3], "generate_embeddings": true}
    """

    file_ids: list[int] = Field(
        ...,
        min_length=1,
        max_length=100,
        description="IDs of previously uploaded documents",
        examples=[[1, 2, 3]],
    )

    generate_embeddings: bool = Field(
        default=True,
        description="Embed and store chunks with the best strategy after analysis",
    )
