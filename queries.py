"""
Filtering and pagination over the entry and user collections.

Filters are plain MongoDB query dicts. Store errors are not caught here;
the app's exception handlers classify them.
"""
import math
import re
from typing import List, Optional, Sequence, Tuple

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.collection import Collection

from errors import ValidationFailed

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 5000
MAX_SEARCH_LENGTH = 100

ENTRY_SEARCH_FIELDS = (
    "id",
    "vehicleNo",
    "from",
    "to",
    "transportBillData.invoiceNo",
    "ownerData.ownerNameAndAddress",
)

USER_SEARCH_FIELDS = (
    "profile.ownerName",
    "profile.companyName",
    "email",
    "uniqueid",
    "profile.mobileNumber",
)

NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


def contains(term: str) -> dict:
    """Case-insensitive substring match; the term is matched literally."""
    return {"$regex": re.escape(term), "$options": "i"}


def any_field_contains(fields: Sequence[str], term: str) -> List[dict]:
    return [{field: contains(term)} for field in fields]


def validate_paging(page: int, limit: int) -> None:
    errors = []
    if not isinstance(page, int) or page < 1:
        errors.append({"field": "page", "message": "Page must be a positive integer"})
    if not isinstance(limit, int) or limit < 1 or limit > MAX_LIMIT:
        errors.append({"field": "limit", "message": f"Limit must be between 1 and {MAX_LIMIT}"})
    if errors:
        raise ValidationFailed(errors)


def build_entry_filter(
    owner_id: ObjectId,
    search: Optional[str] = None,
    status: Optional[str] = None,
    from_location: Optional[str] = None,
    to_location: Optional[str] = None,
) -> dict:
    if not isinstance(owner_id, ObjectId):
        raise TypeError(f"owner_id must be an ObjectId, got {type(owner_id).__name__}")

    filt = {"userId": owner_id}
    if search:
        if len(search) > MAX_SEARCH_LENGTH:
            raise ValidationFailed([
                {"field": "search", "message": f"Search term cannot be more than {MAX_SEARCH_LENGTH} characters"}
            ])
        filt["$or"] = any_field_contains(ENTRY_SEARCH_FIELDS, search)
    if status:
        filt["transportBillData.status"] = status
    if from_location:
        filt["from"] = contains(from_location)
    if to_location:
        filt["to"] = contains(to_location)
    return filt


def build_user_filter(
    search: Optional[str] = None,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> dict:
    filt = {}
    if search:
        filt["$or"] = any_field_contains(USER_SEARCH_FIELDS, search)
    if role:
        filt["role"] = role
    if is_active is not None:
        filt["isActive"] = is_active
    return filt


def pagination(total: int, page: int, limit: int) -> dict:
    pages = math.ceil(total / limit)
    return {
        "total": total,
        "page": page,
        "pages": pages,
        "limit": limit,
        "hasNext": page < pages,
        "hasPrev": page > 1,
    }


def paginate(
    collection: Collection,
    filt: dict,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT,
    sort=NEWEST_FIRST,
    projection: Optional[dict] = None,
) -> Tuple[List[dict], dict]:
    validate_paging(page, limit)
    skip = (page - 1) * limit
    docs = list(collection.find(filt, projection).sort(sort).skip(skip).limit(limit))
    total = collection.count_documents(filt)
    return docs, pagination(total, page, limit)


def list_entries(
    collection: Collection,
    owner_id: ObjectId,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT,
    search: Optional[str] = None,
    status: Optional[str] = None,
    from_location: Optional[str] = None,
    to_location: Optional[str] = None,
) -> Tuple[List[dict], dict]:
    filt = build_entry_filter(owner_id, search, status, from_location, to_location)
    return paginate(collection, filt, page, limit)


def list_users(
    collection: Collection,
    page: int = DEFAULT_PAGE,
    limit: int = DEFAULT_LIMIT,
    search: Optional[str] = None,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> Tuple[List[dict], dict]:
    filt = build_user_filter(search, role, is_active)
    return paginate(collection, filt, page, limit, projection={"password": 0})
