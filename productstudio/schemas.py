"""Pydantic models shared by the session service and the FastAPI endpoints."""

from __future__ import annotations

import base64
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerationMode(str, Enum):
    STUDIO = "ecommerce"
    LIFESTYLE = "social"


class SessionState(str, Enum):
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    EDITING = "EDITING"
    ERROR = "ERROR"


class SourceImage(BaseModel):
    """The photograph uploaded by the user."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(..., description="Original filename as sent by the browser")
    mime_type: str = Field(..., description="MIME type declared for the upload")
    data: bytes = Field(..., repr=False)


class GeneratedImage(BaseModel):
    """One image returned by the generation service."""

    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: bytes = Field(..., repr=False)

    @property
    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


# ---- HTTP payloads ----------------------------------------------------


class ModeRequest(BaseModel):
    mode: GenerationMode = Field(..., description="Style used by the next generation")


class SelectRequest(BaseModel):
    index: int = Field(..., ge=0, description="Position of the image in the current grid")


class RefineRequest(BaseModel):
    prompt: str = Field(..., description="Free-text change to apply to the selected image")


class SessionResponse(BaseModel):
    session_id: str
    state: SessionState
    mode: GenerationMode
    source_filename: Optional[str] = None
    images: List[str] = Field(default_factory=list, description="Current grid as data URLs")
    selected_index: Optional[int] = None
    selected_image: Optional[str] = None
    processing_message: Optional[str] = None
    error: Optional[str] = Field(None, description="Banner shown in the ERROR state")
    inline_error: Optional[str] = Field(None, description="Upload validation message shown while IDLE")
    can_retry: bool = False


class DeleteResponse(BaseModel):
    status: str
    message: str
