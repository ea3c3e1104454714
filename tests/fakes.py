from __future__ import annotations

import copy
import operator
import uuid
from typing import Any, Dict, Iterable, List, Optional

from google.api_core.exceptions import AlreadyExists

from utils.ids import email_doc_id

_OPS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


# -------- Minimal Firestore stand-in (collection/document/where/stream) --------
class FakeSnapshot:
    def __init__(self, ref: "FakeDocRef", data: Optional[Dict[str, Any]]):
        self.reference = ref
        self.id = ref.id
        self._data = copy.deepcopy(data)

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data)


class FakeDocRef:
    def __init__(self, store: Dict[str, Dict[str, Any]], doc_id: str):
        self._store = store
        self.id = doc_id

    def get(self, transaction: Any = None) -> FakeSnapshot:
        return FakeSnapshot(self, self._store.get(self.id))

    def set(self, data: Dict[str, Any], merge: bool = False) -> None:
        if merge and self.id in self._store:
            self._store[self.id].update(copy.deepcopy(data))
        else:
            self._store[self.id] = copy.deepcopy(data)

    def create(self, data: Dict[str, Any]) -> None:
        if self.id in self._store:
            raise AlreadyExists(self.id)
        self._store[self.id] = copy.deepcopy(data)

    def delete(self) -> None:
        self._store.pop(self.id, None)


class FakeQuery:
    def __init__(self, store: Dict[str, Dict[str, Any]], filters=None, limit: Optional[int] = None):
        self._store = store
        self._filters = list(filters or [])
        self._limit = limit

    def where(self, filter: Any) -> "FakeQuery":
        return FakeQuery(self._store, self._filters + [filter], self._limit)

    def limit(self, n: int) -> "FakeQuery":
        return FakeQuery(self._store, self._filters, n)

    def stream(self) -> Iterable[FakeSnapshot]:
        out = []
        for doc_id, data in list(self._store.items()):
            ok = True
            for f in self._filters:
                if f.field_path not in data or not _OPS[f.op_string](data[f.field_path], f.value):
                    ok = False
                    break
            if ok:
                out.append(FakeSnapshot(FakeDocRef(self._store, doc_id), data))
        return out[: self._limit] if self._limit is not None else out


class FakeCollection(FakeQuery):
    def document(self, doc_id: str) -> FakeDocRef:
        return FakeDocRef(self._store, doc_id)


class FakeBatch:
    def __init__(self, db: "FakeFirestore"):
        self._db = db
        self._ops = []

    def set(self, ref: FakeDocRef, data: Dict[str, Any], merge: bool = False) -> None:
        self._ops.append(lambda: ref.set(data, merge=merge))

    def delete(self, ref: FakeDocRef) -> None:
        self._ops.append(ref.delete)

    def commit(self) -> None:
        self._db.commits.append(len(self._ops))
        for op in self._ops:
            op()
        self._ops = []


class FakeFirestore:
    def __init__(self):
        self.data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.commits: List[int] = []

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self.data.setdefault(name, {}))

    def batch(self) -> FakeBatch:
        return FakeBatch(self)


# -------- In-memory repositories --------
class MemoryRepo:
    db = None

    def __init__(self, rows: Optional[Iterable[Dict[str, Any]]] = None):
        self.rows: Dict[str, Dict[str, Any]] = {}
        for r in rows or []:
            self.rows[r["id"]] = dict(r)

    def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        r = self.rows.get(doc_id)
        return dict(r) if r is not None else None

    def update(self, doc_id: str, data: Dict[str, Any]) -> None:
        self.rows.setdefault(doc_id, {"id": doc_id}).update(data)

    def delete(self, doc_id: str) -> None:
        self.rows.pop(doc_id, None)


class FakeMedicationRepo(MemoryRepo):
    def list(self, category=None, subcategory=None, search=None, active_only: bool = True):
        rows = [dict(r) for r in self.rows.values() if r.get("active", True) or not active_only]
        return sorted(rows, key=lambda m: m.get("name", ""))

    def list_created_since(self, since, limit: int = 20):
        return [dict(r) for r in self.rows.values() if r.get("created_at") and r["created_at"] >= since][:limit]


class FakePharmacyRepo(MemoryRepo):
    def list(self, active_only: bool = True):
        return [dict(r) for r in self.rows.values() if r.get("active", True) or not active_only]

    def get_many(self, ids):
        return {i: dict(self.rows[i]) for i in set(ids) if i in self.rows}


class FakePriceRepo(MemoryRepo):
    def add(self, medication_id: str, pharmacy_id: str, dosage: str, price: Any, in_stock: bool = True, **extra):
        doc_id = f"{medication_id}:{pharmacy_id}:{dosage}"
        self.rows[doc_id] = {"id": doc_id, "medication_id": medication_id, "pharmacy_id": pharmacy_id,
                             "dosage": dosage, "price": price, "in_stock": in_stock, "link": "", **extra}

    def list_for_medication(self, medication_id: str, dosage=None, in_stock=None):
        out = []
        for r in self.rows.values():
            if r["medication_id"] != medication_id:
                continue
            if dosage and r["dosage"] != dosage:
                continue
            if in_stock is not None and r.get("in_stock") is not in_stock:
                continue
            out.append(dict(r))
        return out

    def list_updated_since(self, since, limit: int = 20):
        rows = [dict(r) for r in self.rows.values() if r.get("last_updated") and r["last_updated"] >= since]
        rows.sort(key=lambda p: p["last_updated"], reverse=True)
        return rows[:limit]


class FakeAlertRepo(MemoryRepo):
    def create(self, doc: Dict[str, Any]) -> str:
        alert_id = str(uuid.uuid4())
        self.rows[alert_id] = {**doc, "id": alert_id}
        return alert_id

    def find_active(self, email, medication_id, dosage):
        for r in self.rows.values():
            if (r["email"], r["medication_id"], r.get("dosage") or None, r["status"]) == (
                email, medication_id, dosage or None, "active"
            ):
                return dict(r)
        return None

    def list_active_unexpired(self, now):
        return [dict(r) for r in self.rows.values() if r["status"] == "active" and r["expires_at"] > now]

    def list_active_expired(self, now):
        return [dict(r) for r in self.rows.values() if r["status"] == "active" and r["expires_at"] <= now]

    def list_for_email(self, email):
        return [dict(r) for r in self.rows.values() if r["email"] == email]

    def transition(self, alert_id, new_status, patch=None, expected_status="active") -> bool:
        r = self.rows.get(alert_id)
        if r is None or r.get("status") != expected_status:
            return False
        r.update(patch or {})
        r["status"] = new_status
        return True


class FakeSubscriptionRepo(MemoryRepo):
    def __init__(self, rows=None):
        super().__init__()
        self.sent_marks: List[str] = []
        for r in rows or []:
            doc_id = email_doc_id(r["email"])
            self.rows[doc_id] = {**r, "id": doc_id}

    def get_by_email(self, email):
        return self.get(email_doc_id(email))

    def get_by_token(self, token):
        for r in self.rows.values():
            if token and r.get("unsubscribe_token") == token:
                return dict(r)
        return None

    def create(self, doc):
        doc_id = email_doc_id(doc["email"])
        if doc_id in self.rows:
            raise ValueError("already_subscribed")
        self.rows[doc_id] = {**doc, "id": doc_id}
        return dict(self.rows[doc_id])

    def list(self, status=None, preference=None):
        out = []
        for r in self.rows.values():
            if status and r.get("status") != status:
                continue
            if preference and not (r.get("preferences") or {}).get(preference):
                continue
            out.append(dict(r))
        return out

    def mark_sent(self, emails, at):
        emails = list(emails)
        self.sent_marks.extend(emails)
        return len(emails)


class FakeCampaignRepo(MemoryRepo):
    def __init__(self):
        super().__init__()
        self.outcome_batches: List[List[Dict[str, Any]]] = []

    def create(self, doc):
        campaign_id = str(uuid.uuid4())
        self.rows[campaign_id] = {**doc, "id": campaign_id}
        return campaign_id

    def append_outcomes(self, campaign_id, outcomes):
        self.outcome_batches.append(list(outcomes))
        c = self.rows[campaign_id]
        c.setdefault("recipients", []).extend(outcomes)
        stats = c.setdefault("stats", {"total_sent": 0, "total_failed": 0, "total_bounced": 0})
        stats["total_sent"] += sum(1 for o in outcomes if o["status"] == "sent")
        stats["total_failed"] += sum(1 for o in outcomes if o["status"] == "failed")

    def list_recent(self, limit=50):
        return list(self.rows.values())[:limit]


class FakeMessageRepo(MemoryRepo):
    def list(self, medication_id=None, category=None):
        return [dict(r) for r in self.rows.values() if category is None or r.get("category") == category]


# -------- Outbound --------
class FakeDispatcher:
    """Records every send; addresses in `fail_for` come back ok=False."""

    def __init__(self, fail_for: Iterable[str] = ()):
        self.fail_for = set(fail_for)
        self.sent: List[Dict[str, Any]] = []

    def send_email(self, to, subject, html, reply_to=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "reply_to": reply_to})
        if to in self.fail_for:
            return {"ok": False, "error": "smtp_rejected"}
        return {"ok": True}


class FakeAlertDispatcher:
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.calls: List[Dict[str, Any]] = []

    def dispatch_price_drop(self, alert, current_price, cycle_id=None):
        self.calls.append({"alert": alert, "current_price": current_price})
        return {"ok": self.ok} if self.ok else {"ok": False, "error": "provider_down"}
