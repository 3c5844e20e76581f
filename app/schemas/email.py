"""Email-related Pydantic schemas."""

from pydantic import BaseModel, Field


class EmailAttachment(BaseModel):
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class EmailResult(BaseModel):
    """Outcome of a single send."""

    success: bool
    message_id: str | None = None
    error: str | None = None


class BulkEmailResult(EmailResult):
    recipient: str


class TestEmailRequest(BaseModel):
    """Admin request to send a test email."""

    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
