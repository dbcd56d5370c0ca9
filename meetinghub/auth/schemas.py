from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    phone: Optional[str]
    created_at: datetime
    roles: List[str] = []


class ProfileUpdate(BaseModel):
    name: str
    phone: str


class ProfilePictureResponse(BaseModel):
    url: Optional[str] = None
