"""
API Credential Schemas
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

class ApiKeyCreate(BaseModel):
    name: str
    permissions: List[str] = Field(default_factory=lambda: ["read"])
    expires_at: Optional[datetime] = None

class ApiKeyUpdate(BaseModel):
    is_active: bool
