from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response from the health check endpoint."""

    status: str
    version: str
    database: str = Field(description="'ok' when the database answered a ping")


class ErrorResponse(BaseModel):
    """Structured failure returned instead of an exception."""

    success: bool = False
    error: str = Field(description="Machine-readable error code")
    retryable: bool = Field(default=False, description="Safe to resend the same request")
