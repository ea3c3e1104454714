from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from google.cloud.firestore import Client
from google.cloud.firestore_v1.base_query import FieldFilter

from storage.firestore_client import get_firestore_client


def snap_to_dict(snap: Any, id_field: str = "id") -> Dict[str, Any]:
    d = snap.to_dict() or {}
    d[id_field] = snap.id
    return d


class FirestoreRepository:
    """Common document helpers; subclasses set `collection_name`."""

    collection_name = ""

    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_firestore_client()

    def _col(self):
        return self.db.collection(self.collection_name)

    def _where(self, *clauses):
        q = self._col()
        for field, op, value in clauses:
            q = q.where(filter=FieldFilter(field, op, value))
        return q

    def _stream(self, query: Any) -> List[Dict[str, Any]]:
        return [snap_to_dict(s) for s in query.stream()]

    def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        if not doc_id:
            return None
        snap = self._col().document(doc_id).get()
        if not snap.exists:
            return None
        return snap_to_dict(snap)

    def update(self, doc_id: str, data: Dict[str, Any]) -> None:
        self._col().document(doc_id).set(data, merge=True)

    def delete(self, doc_id: str) -> None:
        self._col().document(doc_id).delete()

    def _commit_in_chunks(self, writes: Iterable[Tuple[Any, Optional[Dict[str, Any]], bool]],
                          chunk_size: int = 400) -> int:
        """
        Apply (ref, data, merge) writes through batches of at most `chunk_size`.
        A None `data` deletes the document. Returns the number of writes.
        """
        n = 0
        batch = self.db.batch()
        for ref, data, merge in writes:
            if data is None:
                batch.delete(ref)
            else:
                batch.set(ref, data, merge=merge)
            n += 1
            if n % chunk_size == 0:
                batch.commit()
                batch = self.db.batch()
        if n % chunk_size:
            batch.commit()
        return n

    def _set_many(self, docs: Iterable[Dict[str, Any]]) -> int:
        return self._commit_in_chunks(
            (self._col().document(d["id"]), {k: v for k, v in d.items() if k != "id"}, False) for d in docs
        )

    def list_all(self) -> List[Dict[str, Any]]:
        return self._stream(self._col())

    def clear(self, batch_size: int = 400) -> int:
        """Delete every document in the collection. Returns the number deleted."""
        deleted = 0
        while True:
            snaps = list(self._col().limit(batch_size).stream())
            if not snaps:
                return deleted
            batch = self.db.batch()
            for s in snaps:
                batch.delete(s.reference)
            batch.commit()
            deleted += len(snaps)


def paginate(items: Iterable[Dict[str, Any]], page: int, limit: int) -> Dict[str, Any]:
    rows = list(items)
    page = max(1, int(page))
    limit = max(1, int(limit))
    start = (page - 1) * limit
    return {
        "items": rows[start:start + limit],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": len(rows),
            "pages": (len(rows) + limit - 1) // limit,
        },
    }
