"""Domain Entities - Auth"""
from pydantic import BaseModel
from typing import Optional

class User(BaseModel):
    """Front-desk staff user"""
    user_id: int
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool = False

    class Config:
        from_attributes = True

class UserInDB(User):
    """User with hashed password for DB storage"""
    hashed_password: str
