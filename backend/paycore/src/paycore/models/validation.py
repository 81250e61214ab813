"""Validation result models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ValidationResult(BaseModel):
    """Outcome of a validation step.

    ``error`` joins every hard error with "; ". Warnings never block.
    """

    valid: bool
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, warnings: list[str] | None = None) -> "ValidationResult":
        return cls(valid=True, warnings=warnings or [])

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(valid=False, error=error)


class FileUpload(BaseModel):
    """Metadata of an uploaded proof-of-payment file."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    size: int = Field(..., ge=0, description="Size in bytes")
    mime_type: str = Field(..., description="Declared MIME type", examples=["image/png"])


class FileValidation(BaseModel):
    """Result of the registry-level file check."""

    valid: bool
    error: str | None = None


class DuplicateCheck(BaseModel):
    """Result of a duplicate-submission lookup.

    ``existing_transaction`` is populated whenever a matching transaction was
    found, even outside the duplicate window.
    """

    is_duplicate: bool
    existing_transaction: dict[str, Any] | None = None
    time_difference: float | None = Field(
        default=None, description="Seconds since the matching transaction was created"
    )
