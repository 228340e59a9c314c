"""
Media schemas
"""
from typing import Literal, Optional
from pydantic import BaseModel, Field

MediaFileType = Literal["image", "video", "audio", "pdf", "document"]


class MediaCreate(BaseModel):
    original_name: str = Field(min_length=1, max_length=255)
    file_name: str = Field(min_length=1, max_length=255)
    file_path: str = Field(min_length=1, max_length=500)
    file_size: int = Field(gt=0)
    mime_type: str = Field(min_length=1, max_length=100)
    file_type: MediaFileType
    alt_text: Optional[str] = Field(default=None, max_length=255)
