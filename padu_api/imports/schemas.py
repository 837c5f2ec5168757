"""Pydantic schemas for Import module."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ImportJobCreateRequest(BaseModel):
    """One chunk of mapped rows submitted for ingestion."""

    integration_id: UUID
    filename: str = Field(..., min_length=1, max_length=500)
    file_size: int = Field(..., ge=0, description="Size of the source file in bytes")
    headers: Optional[list[str]] = Field(
        default=None, description="Source header row, used to label error rows"
    )
    column_mapping: dict[str, str] = Field(
        ..., description="Column index (or header) -> canonical field or 'ignored'"
    )
    csv_rows: list[list[Optional[str]]] = Field(..., min_length=1)
    row_numbers: Optional[list[int]] = Field(
        default=None,
        description="1-based data row of each submitted row in the original file",
    )

    @model_validator(mode="after")
    def check_row_numbers(self) -> "ImportJobCreateRequest":
        if self.row_numbers is not None:
            if len(self.row_numbers) != len(self.csv_rows):
                raise ValueError("row_numbers must have one entry per row")
            if any(n < 1 for n in self.row_numbers):
                raise ValueError("row_numbers are 1-based")
            if len(set(self.row_numbers)) != len(self.row_numbers):
                raise ValueError("row_numbers must be unique")
        return self


class ImportJobCreateResponse(BaseModel):
    success: bool
    import_job_id: UUID
    message: str


class ImportJobResponse(BaseModel):
    """Response with import job details."""

    id: UUID
    user_id: UUID
    integration_id: UUID
    filename: str
    file_size: int
    status: str
    total_rows: int
    processed_rows: int
    imported_rows: int
    updated_rows: int
    failed_rows: int
    column_mapping: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ImportErrorResponse(BaseModel):
    """One failed row of an import job."""

    row_number: int
    error_type: str
    error_message: str
    row_data: Optional[dict[str, Any]] = None

    model_config = {"from_attributes": True}
