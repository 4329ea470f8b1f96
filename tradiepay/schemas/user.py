"""User schemas."""
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from tradiepay.models.user import UserRole


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: EmailStr
    role: UserRole = UserRole.TRADIE
    is_active: bool = True


class UserRead(BaseModel):
    id: int
    username: str
    email: EmailStr
    role: UserRole
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
