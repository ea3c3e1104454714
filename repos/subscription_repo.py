from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore

from models.schema import COL_EMAIL_SUBSCRIPTIONS
from repos.base import FirestoreRepository
from utils.ids import email_doc_id


class SubscriptionRepository(FirestoreRepository):
    """email_subscriptions/{email_doc_id(email)}; one document per address."""

    collection_name = COL_EMAIL_SUBSCRIPTIONS

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.get(email_doc_id(email))

    def get_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        rows = self._stream(self._where(("unsubscribe_token", "==", token)).limit(1))
        return rows[0] if rows else None

    def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Raises ValueError('already_subscribed') if the address exists."""
        doc_id = email_doc_id(doc["email"])
        try:
            self._col().document(doc_id).create(doc)
        except AlreadyExists:
            raise ValueError("already_subscribed")
        return {**doc, "id": doc_id}

    def list(self, status: Optional[str] = None, preference: Optional[str] = None) -> List[Dict[str, Any]]:
        clauses = []
        if status:
            clauses.append(("status", "==", status))
        if preference:
            clauses.append((f"preferences.{preference}", "==", True))
        rows = self._stream(self._where(*clauses))
        rows.sort(key=lambda s: s.get("subscribed_at"), reverse=True)
        return rows

    def mark_sent(self, emails: Iterable[str], at: datetime) -> int:
        patch = {"last_email_sent": at, "emails_sent_count": firestore.Increment(1)}
        return self._commit_in_chunks((self._col().document(email_doc_id(e)), patch, True) for e in emails)
