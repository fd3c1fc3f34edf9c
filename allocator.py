"""
Business-facing transport entry IDs: ``TE-FY<start>-<end2>-<seq>``.

The sequence restarts at 1 for every financial year (April to March) and is
zero-padded to four digits; it widens past 9999 but the lookup of the last
issued ID compares strings, so ordering is only reliable up to 9999 per year.

``EntryIdAllocator.allocate`` is called by the write path before the insert.
In atomic mode (the default) the sequence comes from a per-year counter
document incremented with ``find_one_and_update``; the counter is first
raised to the highest sequence already present in the collection so IDs
issued before the counter existed are never reused. Scan mode reproduces
the read-max-then-increment algorithm, which can hand the same ID to two
concurrent writers; the unique index then rejects the second insert.
"""
import logging
import re
from datetime import datetime, date as date_cls
from typing import Callable, Optional

from pymongo import DESCENDING
from pymongo.collection import Collection

logger = logging.getLogger(__name__)

ID_PREFIX = "TE-FY"

FindLastId = Callable[[str], Optional[str]]


def financial_year(d: datetime | date_cls) -> str:
    if d.month >= 4:
        return f"{d.year}-{str(d.year + 1)[-2:]}"
    return f"{d.year - 1}-{str(d.year)[-2:]}"


def entry_id_prefix(fy: str) -> str:
    return f"{ID_PREFIX}{fy}-"


def format_entry_id(fy: str, seq: int) -> str:
    return f"{entry_id_prefix(fy)}{seq:04d}"


def parse_sequence(entry_id: Optional[str]) -> Optional[int]:
    if not entry_id:
        return None
    suffix = entry_id.rsplit("-", 1)[-1]
    if not suffix.isdigit():
        return None
    return int(suffix)


def next_sequence(last_id: Optional[str]) -> int:
    last = parse_sequence(last_id)
    return 1 if last is None else last + 1


class EntryIdAllocator:

    def __init__(
        self,
        entries: Collection,
        counters: Collection,
        atomic: bool = True,
        find_last_id: Optional[FindLastId] = None,
    ):
        self.entries = entries
        self.counters = counters
        self.atomic = atomic
        self.find_last_id = find_last_id or self._find_last_id

    def _find_last_id(self, fy: str) -> Optional[str]:
        doc = self.entries.find_one(
            {"id": {"$regex": f"^{re.escape(entry_id_prefix(fy))}"}},
            {"id": 1},
            sort=[("id", DESCENDING)],
        )
        return doc["id"] if doc else None

    def _next_counter(self, fy: str) -> int:
        name = f"transport_entry_FY{fy}"
        seed = parse_sequence(self.find_last_id(fy)) or 0
        self.counters.update_one({"_id": name}, {"$max": {"seq": seed}}, upsert=True)
        res = self.counters.find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=True,
        )
        return res["seq"]

    def allocate(self, when: datetime | date_cls) -> str:
        fy = financial_year(when)
        if self.atomic:
            seq = self._next_counter(fy)
        else:
            seq = next_sequence(self.find_last_id(fy))
        entry_id = format_entry_id(fy, seq)
        logger.debug(f"Allocated transport entry id {entry_id}")
        return entry_id
