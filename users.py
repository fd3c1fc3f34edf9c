import logging
from typing import Optional, Literal

from fastapi import APIRouter, Depends, Query
from pymongo import ReturnDocument
from pymongo.database import Database

from database import USERS
from deps import get_clock, get_db
from errors import BadRequest
from queries import DEFAULT_LIMIT, MAX_LIMIT, list_users
from schemas import BankUpdate, ProfileUpdate, UserUpdate, flatten_update, to_document
from security import ensure_user_access, get_current_user, is_admin, require_role
from stats import user_summary
from utils import Clock, parse_object_id, serialize_user

logger = logging.getLogger(__name__)

router = APIRouter()


def apply_user_update(db: Database, user_id, changes: dict, now) -> dict:
    changes["updatedAt"] = now
    return db[USERS].find_one_and_update(
        {"_id": user_id},
        {"$set": changes},
        projection={"password": 0},
        return_document=ReturnDocument.AFTER,
    )


@router.get("")
def get_users(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[Literal["user", "admin"]] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    user=Depends(require_role("admin")),
    db: Database = Depends(get_db),
):
    users, pagination = list_users(db[USERS], page=page, limit=limit, search=search, role=role, is_active=is_active)
    return {
        "success": True,
        "count": len(users),
        "total": pagination["total"],
        "page": pagination["page"],
        "pages": pagination["pages"],
        "data": [serialize_user(u) for u in users],
    }


@router.get("/stats")
def get_user_stats(
    user=Depends(require_role("admin")),
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return {"success": True, "data": user_summary(db[USERS], clock())}


@router.get("/uniqueid/{uniqueid}")
def get_user_by_uniqueid(uniqueid: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    target = db[USERS].find_one({"uniqueid": uniqueid.upper()}, {"password": 0})
    ensure_user_access(target, user)
    return {"success": True, "data": serialize_user(target)}


@router.get("/mobile/{mobile}")
def get_user_by_mobile(mobile: str, user=Depends(require_role("admin")), db: Database = Depends(get_db)):
    target = db[USERS].find_one({"profile.mobileNumber": mobile}, {"password": 0})
    ensure_user_access(target, user)
    return {"success": True, "data": serialize_user(target)}


@router.get("/{user_id}")
def get_user(user_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    target = db[USERS].find_one({"_id": parse_object_id(user_id)}, {"password": 0})
    ensure_user_access(target, user)
    return {"success": True, "data": serialize_user(target)}


@router.put("/{user_id}")
def update_user(
    user_id: str,
    body: UserUpdate,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    oid = parse_object_id(user_id)
    ensure_user_access(db[USERS].find_one({"_id": oid}, {"_id": 1}), user)

    data = to_document(body, exclude_unset=True)
    if not is_admin(user):
        # role and activation are admin-controlled
        data.pop("role", None)
        data.pop("isActive", None)
    if data.get("email"):
        data["email"] = data["email"].lower()
    updated = apply_user_update(db, oid, flatten_update(data), clock())
    return {"success": True, "data": serialize_user(updated)}


@router.put("/{user_id}/profile")
def update_profile(
    user_id: str,
    body: ProfileUpdate,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    oid = parse_object_id(user_id)
    ensure_user_access(db[USERS].find_one({"_id": oid}, {"_id": 1}), user)
    changes = flatten_update({"profile": to_document(body, exclude_unset=True)})
    updated = apply_user_update(db, oid, changes, clock())
    return {"success": True, "data": serialize_user(updated)}


@router.put("/{user_id}/bank")
def update_bank(
    user_id: str,
    body: BankUpdate,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    oid = parse_object_id(user_id)
    ensure_user_access(db[USERS].find_one({"_id": oid}, {"_id": 1}), user)
    changes = flatten_update({"bank": to_document(body, exclude_unset=True)})
    updated = apply_user_update(db, oid, changes, clock())
    return {"success": True, "data": serialize_user(updated)}


@router.delete("/{user_id}")
def delete_user(user_id: str, user=Depends(require_role("admin")), db: Database = Depends(get_db)):
    oid = parse_object_id(user_id)
    if oid == user["_id"]:
        raise BadRequest(detail="Cannot delete your own account")
    target = db[USERS].find_one_and_delete({"_id": oid}, projection={"password": 0})
    ensure_user_access(target, user)
    logger.info(f"User {target.get('uniqueid')} deleted by admin {user['_id']}")
    return {
        "success": True,
        "message": "User deleted successfully",
        "data": {
            "id": str(target["_id"]),
            "uniqueid": target.get("uniqueid"),
            "email": target.get("email"),
            "profile": target.get("profile"),
        },
    }
