"""Reference corpus schemas"""

from pydantic import BaseModel, ConfigDict, Field


class ReferenceDocument(BaseModel):
    """One pre-indexed recipe document. Built offline, never mutated."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str
    relative_path: str = Field(alias="relativePath")
    content: str = ""
    ingredients: tuple[str, ...] = ()
    operations: tuple[str, ...] = ()


class ReferenceMatch(BaseModel):
    """Retrieval hit. Scores are only comparable within a single query."""

    title: str
    path: str
    score: float
    excerpt: str = ""
