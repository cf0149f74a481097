from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Requests

class FieldEdit(BaseModel):
    """One form field change."""

    path: str = Field(..., min_length=1, description="camelCase dotted path, e.g. customer.address.city")
    value: Any = Field(None, description="New value for the field")


class FieldEditsRequest(BaseModel):
    """Batch of field changes typed since the last request."""

    edits: List[FieldEdit] = Field(..., min_length=1)

    model_config = {
        "json_schema_extra": {
            "example": {
                "edits": [
                    {"path": "customer.name", "value": "Jane Doe"},
                    {"path": "auto.counts.vehicles", "value": 2},
                    {"path": "auto.vehicles.0.vin", "value": "1hgcm82633a004352"}
                ]
            }
        }
    }


class TabRequest(BaseModel):
    tab: str = Field(..., description="auto, home or business")


class ImportRequest(BaseModel):
    """Pasted JSON text, or an already parsed document."""

    text: Optional[str] = Field(None, description="Raw JSON text")
    document: Optional[Any] = Field(None, description="Parsed JSON document")


class FileRequest(BaseModel):
    """Answer to the file chooser for save-as and open."""

    filename: Optional[str] = Field(None, description="File name inside the intake workspace")
    cancel: bool = Field(False, description="Operator backed out of the chooser")


# Responses

class APIResponse(BaseModel):
    """Base API response model."""

    success: bool = Field(..., description="Whether the request was successful")
    message: str = Field(..., description="Response message")
    timestamp: datetime = Field(default_factory=_now, description="Response timestamp")


class IntakeResponse(APIResponse):
    """Current intake document."""

    success: bool = Field(True, description="Success flag")
    intake: Dict[str, Any] = Field(..., description="Canonical intake document")
    status: Dict[str, Any] = Field(default_factory=dict, description="Save status indicator")


class OperationResponse(APIResponse):
    """Outcome of a save, open, import or new-intake request."""

    status: str = Field(..., description="saved, opened, imported, new or cancelled")
    file: Optional[str] = Field(None, description="Bound file name, if any")
    migrations: int = Field(0, description="Number of fields read from prior names or paths")
    newer_than_schema: bool = Field(False, description="Document declared a newer schema version")

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "message": "Saved",
                "timestamp": "2024-01-15T10:30:00Z",
                "status": "saved",
                "file": "Jane Doe_2024-01-15.json",
                "migrations": 0,
                "newer_than_schema": False
            }
        }
    }


class DecodeResponse(APIResponse):
    index: int
    vin: str
    decoded: str
    decoder_url: str


class ErrorResponse(APIResponse):
    """Error response model."""

    success: bool = Field(False, description="Success flag")
    error_code: str = Field(..., description="Error code")
    error_details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    status: str
    version: str
    schema_version: int
    file_access: str
    storage_key: str
