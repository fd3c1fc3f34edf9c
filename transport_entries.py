import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo import ReturnDocument
from pymongo.database import Database

from allocator import EntryIdAllocator
from database import TRANSPORT_ENTRIES
from deps import get_allocator, get_clock, get_db
from queries import DEFAULT_LIMIT, MAX_LIMIT, MAX_SEARCH_LENGTH, list_entries
from schemas import TransportEntryIn, TransportEntryUpdate, flatten_update, to_document
from security import ensure_entry_access, get_current_user
from stats import entry_summary
from utils import Clock, parse_object_id, serialize_entry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
def get_entries(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    search: Optional[str] = Query(None, max_length=MAX_SEARCH_LENGTH),
    status: Optional[str] = None,
    from_location: Optional[str] = Query(None, alias="from"),
    to_location: Optional[str] = Query(None, alias="to"),
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    entries, pagination = list_entries(
        db[TRANSPORT_ENTRIES],
        user["_id"],
        page=page,
        limit=limit,
        search=search,
        status=status,
        from_location=from_location,
        to_location=to_location,
    )
    return {
        "success": True,
        "data": {
            "entries": [serialize_entry(e) for e in entries],
            "pagination": pagination,
        },
    }


@router.get("/stats/summary")
def get_stats_summary(
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return {"success": True, "data": entry_summary(db[TRANSPORT_ENTRIES], user["_id"], clock())}


@router.get("/{entry_id}")
def get_entry(entry_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    entry = db[TRANSPORT_ENTRIES].find_one({"_id": parse_object_id(entry_id)})
    ensure_entry_access(entry, user)
    return {"success": True, "data": serialize_entry(entry)}


@router.post("", status_code=201)
def create_entry(
    body: TransportEntryIn,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    allocator: EntryIdAllocator = Depends(get_allocator),
    clock: Clock = Depends(get_clock),
):
    doc = to_document(body)
    # allocated before the insert; a duplicate from a lost race is rejected by the unique index
    doc["id"] = allocator.allocate(doc["date"])
    doc["userId"] = user["_id"]
    now = clock()
    doc["createdAt"] = now
    doc["updatedAt"] = now
    res = db[TRANSPORT_ENTRIES].insert_one(doc)
    doc["_id"] = res.inserted_id
    logger.info(f"Transport entry {doc['id']} created by {user['_id']}")
    return {
        "success": True,
        "data": serialize_entry(doc),
        "message": "Transport entry created successfully",
    }


@router.put("/{entry_id}")
def update_entry(
    entry_id: str,
    body: TransportEntryUpdate,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    oid = parse_object_id(entry_id)
    ensure_entry_access(db[TRANSPORT_ENTRIES].find_one({"_id": oid}), user)
    changes = flatten_update(to_document(body, exclude_unset=True))
    changes["updatedAt"] = clock()
    updated = db[TRANSPORT_ENTRIES].find_one_and_update(
        {"_id": oid},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    return {
        "success": True,
        "data": serialize_entry(updated),
        "message": "Transport entry updated successfully",
    }


@router.delete("/{entry_id}")
def delete_entry(entry_id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    oid = parse_object_id(entry_id)
    entry = ensure_entry_access(db[TRANSPORT_ENTRIES].find_one({"_id": oid}), user)
    db[TRANSPORT_ENTRIES].delete_one({"_id": oid})
    logger.info(f"Transport entry {entry.get('id')} deleted by {user['_id']}")
    return {"success": True, "message": "Transport entry deleted successfully"}
