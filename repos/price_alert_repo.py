from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.cloud import firestore

from models.schema import ALERT_ACTIVE, COL_PRICE_ALERTS
from repos.base import FirestoreRepository


class PriceAlertRepository(FirestoreRepository):
    collection_name = COL_PRICE_ALERTS

    def create(self, doc: Dict[str, Any]) -> str:
        alert_id = str(uuid.uuid4())
        self._col().document(alert_id).set(doc, merge=False)
        return alert_id

    def find_active(self, email: str, medication_id: str, dosage: Optional[str]) -> Optional[Dict[str, Any]]:
        rows = self._stream(self._where(
            ("email", "==", email),
            ("medication_id", "==", medication_id),
            ("status", "==", ALERT_ACTIVE),
        ))
        for r in rows:
            if (r.get("dosage") or None) == (dosage or None):
                return r
        return None

    def list_active_unexpired(self, now: datetime) -> List[Dict[str, Any]]:
        return self._stream(self._where(("status", "==", ALERT_ACTIVE), ("expires_at", ">", now)))

    def list_active_expired(self, now: datetime) -> List[Dict[str, Any]]:
        return self._stream(self._where(("status", "==", ALERT_ACTIVE), ("expires_at", "<=", now)))

    def list_for_email(self, email: str) -> List[Dict[str, Any]]:
        rows = self._stream(self._where(("email", "==", email)))
        rows.sort(key=lambda a: a.get("created_at"), reverse=True)
        return rows

    def transition(self, alert_id: str, new_status: str, patch: Optional[Dict[str, Any]] = None,
                   expected_status: str = ALERT_ACTIVE) -> bool:
        """
        Move an alert to `new_status` only if it is still in `expected_status`.

        Returns False (and writes nothing) when the alert is missing or has
        already left the expected state.
        """
        ref = self._col().document(alert_id)
        txn = self.db.transaction()

        @firestore.transactional
        def _run(tx: firestore.Transaction) -> bool:
            snap = ref.get(transaction=tx)
            if not snap.exists:
                return False
            if (snap.to_dict() or {}).get("status") != expected_status:
                return False
            tx.set(ref, {**(patch or {}), "status": new_status}, merge=True)
            return True

        return _run(txn)
