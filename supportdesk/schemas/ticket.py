# supportdesk/schemas/ticket.py
from pydantic import BaseModel, Field
from uuid import UUID


class DedupRequest(BaseModel):
    """Question asked in a chat that the knowledge base could not answer."""
    question: str = Field(..., min_length=1)
    chat_id: UUID
    message_id: UUID


class ResolveTicketsRequest(BaseModel):
    ticket_ids: list[str]


class MarkResolvedRequest(BaseModel):
    resolved: bool = True
