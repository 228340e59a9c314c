"""
Role schemas
"""
from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None
    permissions: List[str] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = None
    permissions: Optional[List[str]] = None
    is_built_in: Optional[bool] = None

    class Config:
        extra = "forbid"


class BulkPermissionOperation(BaseModel):
    role_ids: List[str] = Field(min_length=1)
    permissions: List[str]
    operation: Literal["add", "remove", "replace"]


class BulkPermissionResult(BaseModel):
    success: List[str] = Field(default_factory=list)
    failed: List[dict] = Field(default_factory=list)  # {"role_id": ..., "error": ...}
