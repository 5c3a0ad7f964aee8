"""
Pydantic schemas for the documents the service reads and writes.

`MetadataRecord` mirrors the service metadata JSON published on IPFS by
the Agent owner; only `modelURI` is needed here, other keys are kept.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MetadataRecord(BaseModel):
    """
    Service metadata document.

    - modelURI: IPFS locator of the gzipped tar of .proto files
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    model_uri: str = Field(alias="modelURI")


class ErrorResponse(BaseModel):
    """Body of every non-200 response."""

    error: str
