"""
Pydantic schemas for normalized payloads and API responses.

This module contains:
- NormalizedSms, the canonical shape every provider payload is mapped onto
- Response models for the webhook, listing and health routes
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Normalized Payload
# =============================================================================

class NormalizedSms(BaseModel):
    """
    Canonical (from, to, text) triple extracted from a provider payload.
    All fields are plain strings; absent values are already defaulted.
    """
    # 'from' is a reserved word in Python, so we use alias
    from_number: str = Field(
        default="unknown",
        alias="from",
        description="Sender identifier as reported by the provider"
    )
    to_number: str = Field(
        default="unknown",
        alias="to",
        description="Recipient identifier as reported by the provider"
    )
    text: str = Field(default="", description="Message text")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


# =============================================================================
# Response Models
# =============================================================================

class WebhookResponse(BaseModel):
    """Acknowledgement returned to the provider."""
    received: bool = Field(default=True)


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    error: str = Field(..., description="Error code, e.g. internal_error")


class SmsRecordResponse(BaseModel):
    """A stored record as exposed by GET /messages, with its derived OTP."""
    id: int
    from_number: str = Field(..., alias="from", serialization_alias="from")
    to_number: str = Field(..., alias="to", serialization_alias="to")
    body: str
    otp: Optional[str] = Field(None, description="Detected verification code, if any")
    created_at: str

    model_config = ConfigDict(populate_by_name=True)


class MessagesListResponse(BaseModel):
    data: list[SmsRecordResponse] = Field(default_factory=list)
    count: int = Field(..., ge=0, description="Number of records in data")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
