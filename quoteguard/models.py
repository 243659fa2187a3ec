"""
Quote data models shared by the client, the search provider and the API.
"""

from pydantic import BaseModel, Field, field_validator


class SearchResult(BaseModel):
    """One organic result from the search provider."""

    snippet: str
    link: str | None = None
    title: str | None = None


class Quote(BaseModel):
    """A single quote."""

    text: str
    author: str
    source: str | None = None


class QuoteRequest(BaseModel):
    """Validated fetch request."""

    person: str = Field(min_length=1)
    count: int = Field(default=5, ge=1, le=10)
    topic: str | None = None

    @field_validator("person")
    @classmethod
    def _person_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Value cannot be empty")
        return value

    @field_validator("topic")
    @classmethod
    def _blank_topic_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class QuoteMetadata(BaseModel):
    """Provenance of a quote response."""

    cached: bool = False
    stale: bool = False
    fallback: bool = False
    retries: int = 0


class QuoteResponse(BaseModel):
    """Result of a fetch."""

    quotes: list[Quote] = Field(default_factory=list)
    metadata: QuoteMetadata = Field(default_factory=QuoteMetadata)
