from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from bson import ObjectId
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError
from passlib.hash import bcrypt
from pymongo.database import Database

from config import Settings
from database import USERS
from deps import get_db, get_settings
from errors import Forbidden, InvalidToken, NotFound

bearer = HTTPBearer(auto_error=False)


# ---------- Passwords ----------

def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.using(rounds=rounds).hash(password)


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return bcrypt.verify(password, hashed)


# ---------- Tokens ----------

def create_access_token(user: dict, settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    payload = {
        "sub": str(user["_id"]),
        "email": user["email"],
        "role": user.get("role", "user"),
        "exp": expire,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, settings: Settings) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise InvalidToken(detail="Token expired")
    except JWTError:
        raise InvalidToken()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidToken(detail="Not authorized, no token")
    payload = decode_token(credentials.credentials, settings)
    sub = payload.get("sub")
    if not sub or not ObjectId.is_valid(sub):
        raise InvalidToken()
    user = db[USERS].find_one({"_id": ObjectId(sub)}, {"password": 0})
    if not user or not user.get("isActive", True):
        raise InvalidToken(detail="User not found or inactive")
    return user


def require_role(required: Literal["admin", "user"]):
    def dep(user: dict = Depends(get_current_user)):
        role = user.get("role", "user")
        if required == "admin" and role != "admin":
            raise Forbidden(detail="Admin only")
        return user
    return dep


# ---------- Ownership ----------

def is_admin(user: dict) -> bool:
    return user.get("role") == "admin"


def ensure_entry_access(entry: Optional[dict], caller: dict) -> dict:
    """Entries belong to their owner alone; admins get no override here."""
    if entry is None:
        raise NotFound(detail="Transport entry not found")
    if entry.get("userId") != caller["_id"]:
        raise Forbidden(detail="Not authorized to access this transport entry")
    return entry


def ensure_user_access(target: Optional[dict], caller: dict) -> dict:
    if target is None:
        raise NotFound(detail="User not found")
    if target["_id"] != caller["_id"] and not is_admin(caller):
        raise Forbidden(detail="Not authorized to access this user")
    return target
