import secrets
import string
import time
from datetime import datetime, timezone, date as date_cls
from typing import Any, Callable, Optional

from bson import ObjectId
from bson.errors import InvalidId

Clock = Callable[[], datetime]

BASE36 = string.digits + string.ascii_uppercase


def utcnow() -> datetime:
    # documents store naive UTC datetimes, which is what pymongo returns by default
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(d: datetime | date_cls) -> datetime:
    if not isinstance(d, datetime):
        return datetime(d.year, d.month, d.day)
    if d.tzinfo is None:
        return d
    return d.astimezone(timezone.utc).replace(tzinfo=None)


def to_base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, r = divmod(n, 36)
        digits.append(BASE36[r])
    return "".join(reversed(digits))


def generate_unique_id(prefix: str = "USER") -> str:
    """USER/ADMIN prefix + base-36 millisecond timestamp + 5 random base-36 chars."""
    timestamp = to_base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(BASE36) for _ in range(5))
    return f"{prefix}{timestamp}{random_part}"


def parse_object_id(value: str) -> ObjectId:
    """Raises bson InvalidId, classified as a 400 by the app."""
    if not ObjectId.is_valid(value):
        raise InvalidId(f"'{value}' is not a valid id")
    return ObjectId(value)


def stringify_ids(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: stringify_ids(v) for k, v in value.items()}
    if isinstance(value, list):
        return [stringify_ids(v) for v in value]
    return value


def serialize_entry(doc: dict) -> dict:
    return stringify_ids(doc)


def serialize_user(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    d = {k: v for k, v in doc.items() if k != "password"}
    d["id"] = str(d.pop("_id"))
    return stringify_ids(d)
