# supportdesk/schemas/knowledge.py
from pydantic import BaseModel, Field
from typing import Optional


class IngestRequest(BaseModel):
    """Add knowledge from text or a URL (exactly one)."""
    content: Optional[str] = None
    url: Optional[str] = None
    ticket_id: Optional[str] = None
    source: Optional[str] = Field(None, max_length=2048)


class SearchRequest(BaseModel):
    """Similarity search over one embedding family."""
    query: str = Field(..., min_length=1)
    family: str = Field("answers", pattern="^(answers|questions)$")
    limit: Optional[int] = Field(None, ge=1, le=50)
    threshold: Optional[float] = Field(None, ge=-1.0, le=1.0)
