# app/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.
"""

from app.schemas.lifecycle import (
    ArchiveResponse,
    CleanupHealthResponse,
    CleanupResponse,
    DiagnosticResponse,
    ErrorResponse,
    LifecycleRunRequest,
    ListingListResponse,
    MigrationResponse,
    RestoreResponse,
    SweepResponse,
    ValidateTtlFieldsRequest,
    ValidationResponse,
)

__all__ = [
    "ArchiveResponse",
    "CleanupHealthResponse",
    "CleanupResponse",
    "DiagnosticResponse",
    "ErrorResponse",
    "LifecycleRunRequest",
    "ListingListResponse",
    "MigrationResponse",
    "RestoreResponse",
    "SweepResponse",
    "ValidateTtlFieldsRequest",
    "ValidationResponse",
]
