"""
MongoDB access.

The database handle is created once by the app factory and stored on
``app.state.db``; route handlers receive it through the ``get_db`` dependency.
"""
import logging

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import Settings

logger = logging.getLogger(__name__)

USERS = "users"
TRANSPORT_ENTRIES = "transport_entries"
PASSWORD_RESETS = "password_resets"
COUNTERS = "counters"


def connect(settings: Settings) -> Database:
    client = MongoClient(settings.DATABASE_URL)
    logger.info(f"Connected to MongoDB database '{settings.DATABASE_NAME}'")
    return client[settings.DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    users = db[USERS]
    users.create_index("email", unique=True)
    users.create_index("uniqueid", unique=True)
    users.create_index("profile.mobileNumber", unique=True)
    users.create_index("profile.gstNumber")
    users.create_index("profile.panNumber")
    users.create_index([("createdAt", DESCENDING)])

    entries = db[TRANSPORT_ENTRIES]
    entries.create_index("id", unique=True, sparse=True)
    entries.create_index("userId")
    entries.create_index("vehicleNo")
    entries.create_index([("from", ASCENDING), ("to", ASCENDING)])
    entries.create_index("transportBillData.status")
    entries.create_index("transportBillData.invoiceNo")
    entries.create_index([("date", DESCENDING)])
    entries.create_index([("createdAt", DESCENDING)])

    resets = db[PASSWORD_RESETS]
    # expired reset tokens are removed by the server
    resets.create_index("expiresAt", expireAfterSeconds=0)
    resets.create_index("token", unique=True)
    resets.create_index("email")
    resets.create_index("userId")
    logger.info("Indexes ensured")
