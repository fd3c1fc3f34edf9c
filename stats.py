from datetime import datetime, timedelta

from bson import ObjectId
from pymongo.collection import Collection

RECENT_ENTRY_DAYS = 7
RECENT_USER_DAYS = 30


def entry_summary(collection: Collection, owner_id: ObjectId, now: datetime) -> dict:
    """Counts and totals over one user's entries.

    ``statusBreakdown`` lists only statuses that occur, as ``{_id, count}``
    pairs; ``recentEntries`` counts entries created in the 7 days before ``now``.
    """
    if not isinstance(owner_id, ObjectId):
        raise TypeError(f"owner_id must be an ObjectId, got {type(owner_id).__name__}")

    total_entries = collection.count_documents({"userId": owner_id})

    status_stats = list(collection.aggregate([
        {"$match": {"userId": owner_id}},
        {"$group": {"_id": "$transportBillData.status", "count": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]))

    total_amount = 0
    for r in collection.aggregate([
        {"$match": {"userId": owner_id}},
        {"$group": {"_id": None, "total": {"$sum": "$transportBillData.total"}}},
    ]):
        total_amount = r.get("total", 0)

    since = now - timedelta(days=RECENT_ENTRY_DAYS)
    recent_entries = collection.count_documents({"userId": owner_id, "createdAt": {"$gte": since}})

    return {
        "totalEntries": total_entries,
        "statusBreakdown": status_stats,
        "totalAmount": total_amount,
        "recentEntries": recent_entries,
    }


def user_summary(collection: Collection, now: datetime) -> dict:
    since = now - timedelta(days=RECENT_USER_DAYS)
    return {
        "total": collection.count_documents({}),
        "active": collection.count_documents({"isActive": True}),
        "inactive": collection.count_documents({"isActive": False}),
        "admins": collection.count_documents({"role": "admin"}),
        "regular": collection.count_documents({"role": "user"}),
        "recentRegistrations": collection.count_documents({"createdAt": {"$gte": since}}),
    }
