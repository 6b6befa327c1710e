"""API Dependencies - Front-desk staff authentication"""
from typing import Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from domain.auth import User, UserInDB
from infrastructure.security import decode_access_token, get_password_hash
from api.schemas import TokenData

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# Staff accounts keyed by username; user_id is the identity stamped on bookings.
# Only bcrypt hashes are kept, computed once at import.
fake_users_db: Dict[str, dict] = {
    "admin": {
        "user_id": 1,
        "username": "admin",
        "full_name": "Front Desk Manager",
        "email": "manager@hotel.example",
        "hashed_password": get_password_hash("admin123"),
        "disabled": False,
    },
    "reception": {
        "user_id": 2,
        "username": "reception",
        "full_name": "Reception Desk",
        "email": "reception@hotel.example",
        "hashed_password": get_password_hash("reception123"),
        "disabled": False,
    },
}


def get_user(db: Dict[str, dict], username: str) -> Optional[UserInDB]:
    if username in db:
        return UserInDB(**db[username])
    return None


async def get_current_user(token: str = Depends(oauth2_scheme)) -> UserInDB:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        token_data = TokenData(username=payload.get("sub"))
    except JWTError:
        raise credentials_exception
    if token_data.username is None:
        raise credentials_exception

    user = get_user(fake_users_db, token_data.username)
    if user is None:
        raise credentials_exception
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user
