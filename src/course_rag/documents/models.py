"""
Document Models

There is no stored document entity: a document is the set of chunks sharing
one owner, one file name and (optionally) one course. These models make that
composite identity explicit so consumers do not rebuild it by hand.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DocumentType = Literal["syllabus", "notes", "other"]


class DocumentKey(BaseModel):
    """
    Composite identity of a document: ``(user_id, file_name, course_id?)``.

    When ``course_id`` is None or empty the key matches the user's chunks with that
    file name regardless of course.
    """

    user_id: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1)
    course_id: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class DocumentSummary(BaseModel):
    """Per-document listing row derived from its chunk set."""

    file_name: str
    document_type: str
    chunk_count: int = Field(..., ge=1)
    created_at: Optional[datetime] = None
    first_chunk_id: str
    course_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class IngestionResult(BaseModel):
    """Outcome of saving a text document."""

    file_name: str
    document_id: Optional[str] = None
    chunk_count: int = Field(..., ge=0)
    message: str

    model_config = ConfigDict(frozen=True)
