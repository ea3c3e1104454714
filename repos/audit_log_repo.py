from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from google.cloud import firestore

from models.audit import build_changes
from models.documents import utcnow
from models.schema import COL_AUDIT_LOGS
from repos.base import FirestoreRepository

log = logging.getLogger("medprice.audit")


class AuditLogRepository(FirestoreRepository):
    """Append-only record of admin and ingestion actions."""

    collection_name = COL_AUDIT_LOGS

    def log_action(
        self,
        user: str,
        action: str,
        entity: str,
        entity_id: str,
        changes: Optional[Dict[str, Any]] = None,
        meta: Optional[Dict[str, Any]] = None,
        source: str = "admin_dashboard",
    ) -> Optional[str]:
        """
        Write an audit entry. Write failures are logged and return None.
        """
        entry_id = str(uuid.uuid4())
        try:
            doc = {
                "user": user,
                "action": action,
                "entity": entity,
                "entity_id": entity_id,
                "changes": build_changes(action, **(changes or {})),
                "metadata": {
                    "ip_address": (meta or {}).get("ip_address", ""),
                    "user_agent": (meta or {}).get("user_agent", ""),
                    "source": source,
                },
                "timestamp": utcnow(),
            }
            self._col().document(entry_id).set(doc, merge=False)
            return entry_id
        except Exception as e:
            log.error(
                "audit_log_write_failed",
                extra={"extra": {"event": "audit_log_write_failed", "action": action, "entity": entity,
                                 "entity_id": entity_id, "error_type": type(e).__name__, "message": str(e)}},
                exc_info=True,
            )
            return None

    def list(self, action: Optional[str] = None, user: Optional[str] = None) -> List[Dict[str, Any]]:
        clauses = []
        if action:
            clauses.append(("action", "==", action))
        if user:
            clauses.append(("user", "==", user))
        if clauses:
            rows = self._stream(self._where(*clauses))
            rows.sort(key=lambda r: r.get("timestamp"), reverse=True)
            return rows
        return self._stream(self._col().order_by("timestamp", direction=firestore.Query.DESCENDING))
