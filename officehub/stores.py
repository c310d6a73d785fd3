# officehub/stores.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from . import db as dbnames
from .errors import ConflictError, NotFoundError
from .models import HistoryKind, KpiHistoryEntry, KpiKey, KpiRecord

logger = logging.getLogger(__name__)


def _oid(doc_id: str) -> Optional[ObjectId]:
    return ObjectId(doc_id) if ObjectId.is_valid(doc_id) else None


class RequestStore:
    """Leave/WFH request documents addressed by their string id."""

    def __init__(self, collection: Collection):
        self.collection = collection

    @classmethod
    def from_db(cls, db: Database) -> "RequestStore":
        return cls(db[dbnames.LEAVE_REQUESTS])

    def create(self, doc: Dict[str, Any]) -> str:
        res = self.collection.insert_one(dict(doc))
        return str(res.inserted_id)

    def get(self, request_id: str) -> Optional[Dict[str, Any]]:
        oid = _oid(request_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def update(self, request_id: str, fields: Dict[str, Any]) -> None:
        if not self.update_if(request_id, {}, fields):
            raise NotFoundError(f"Leave request {request_id} not found", field="requestId")

    def update_if(self, request_id: str, expected: Dict[str, Any], fields: Dict[str, Any]) -> bool:
        """Conditional partial update; False when nothing matched id + expected."""
        oid = _oid(request_id)
        if oid is None:
            return False
        res = self.collection.update_one({"_id": oid, **expected}, {"$set": fields})
        return res.matched_count == 1

    def delete(self, request_id: str) -> None:
        oid = _oid(request_id)
        res = self.collection.delete_one({"_id": oid}) if oid is not None else None
        if res is None or res.deleted_count == 0:
            raise NotFoundError(f"Leave request {request_id} not found", field="requestId")

    def query(self, predicate: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        return list(self.collection.find(predicate or {}).sort("requestedAt", -1))


class KpiLedger:
    """
    Per-(user, department) KPI records plus the award history.

    Records are written with an optimistic read-modify-write keyed on the
    composite key and a version counter, so two awards racing for the same
    user and department cannot lose an update, and a write for one key never
    touches another.
    """

    def __init__(self, records: Collection, history: Collection, claims: Collection, max_retries: int = 5):
        self.records = records
        self.history = history
        self.claims = claims
        self.max_retries = max_retries

    @classmethod
    def from_db(cls, db: Database, max_retries: int = 5) -> "KpiLedger":
        return cls(
            db[dbnames.KPI_RECORDS],
            db[dbnames.KPI_HISTORY],
            db[dbnames.KPI_AWARD_CLAIMS],
            max_retries=max_retries,
        )

    # ---------- records ----------
    def get(self, key: KpiKey) -> Optional[KpiRecord]:
        doc = self.records.find_one(key.to_filter())
        return KpiRecord.from_document(doc) if doc else None

    def upsert_by_key(
        self,
        key: KpiKey,
        mutate: Callable[[KpiRecord], KpiRecord],
        user_name: str = "",
        now: Optional[datetime] = None,
        create: bool = True,
    ) -> Optional[KpiRecord]:
        """
        Applies `mutate` to the record for `key` and writes it back atomically.
        A missing record is created from an empty one unless `create` is False,
        in which case None is returned.
        """
        for attempt in range(1, self.max_retries + 1):
            doc = self.records.find_one(key.to_filter())
            if doc is None:
                if not create:
                    return None
                record = mutate(KpiRecord.empty(key, user_name, now))
                record.version = 1
                try:
                    self.records.insert_one(record.to_document())
                    return record
                except DuplicateKeyError:
                    logger.info("KPI record %s created concurrently (attempt %d)", key, attempt)
                    continue

            if "version" in doc:
                guard: Dict[str, Any] = {"version": doc["version"]}
            else:
                guard = {"version": {"$exists": False}}
            current = KpiRecord.from_document(doc)
            expected = current.version
            record = mutate(current)
            record.version = expected + 1
            res = self.records.update_one({**key.to_filter(), **guard}, {"$set": record.to_document()})
            if res.matched_count == 1:
                return record
            logger.info("KPI record %s changed underneath us (attempt %d)", key, attempt)

        raise ConflictError(f"Could not update KPI record {key} after {self.max_retries} attempts")

    def query_by_department(self, department: str) -> List[KpiRecord]:
        return [KpiRecord.from_document(d) for d in self.records.find({"department": department})]

    def all(self) -> List[KpiRecord]:
        return [KpiRecord.from_document(d) for d in self.records.find({})]

    # ---------- history ----------
    def append_history(self, entry: KpiHistoryEntry) -> str:
        res = self.history.insert_one(entry.to_document())
        entry.id = str(res.inserted_id)
        return entry.id

    def awards_for(
        self,
        work_unit_id: str,
        department: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[KpiHistoryEntry]:
        """Award entries for a work unit that have not been reversed yet."""
        predicate: Dict[str, Any] = {
            "workUnitId": work_unit_id,
            "kind": HistoryKind.AWARD.value,
            "reversedAt": {"$exists": False},
        }
        if department is not None:
            predicate["department"] = department
        if user_id is not None:
            predicate["userId"] = user_id
        return [KpiHistoryEntry.from_document(d) for d in self.history.find(predicate)]

    def mark_reversed(self, entry_ids: List[str], at: datetime) -> int:
        oids = [o for o in (_oid(i) for i in entry_ids) if o is not None]
        if not oids:
            return 0
        res = self.history.update_many({"_id": {"$in": oids}}, {"$set": {"reversedAt": at.isoformat()}})
        return res.modified_count

    # ---------- award claims ----------
    def claim_award(self, work_unit_id: str, key: KpiKey, at: datetime) -> bool:
        """
        Reserves the (work unit, department, user) slot for a single award.
        The unique claim index makes this the one atomic step, so of two
        deliveries of the same event only one gets True.
        """
        try:
            self.claims.insert_one({"workUnitId": work_unit_id, **key.to_filter(), "claimedAt": at.isoformat()})
        except DuplicateKeyError:
            return False
        return True

    def release_award(self, work_unit_id: str, key: KpiKey) -> int:
        return self.claims.delete_one({"workUnitId": work_unit_id, **key.to_filter()}).deleted_count
