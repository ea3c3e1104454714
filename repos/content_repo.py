from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from models.documents import message_is_current, utcnow
from models.schema import COL_ADMIN_MESSAGES, COL_BLOG_POSTS, COL_CONTACTS
from repos.base import FirestoreRepository


class BlogRepository(FirestoreRepository):
    collection_name = COL_BLOG_POSTS

    def get_by_slug(self, slug: str, published_only: bool = True) -> Optional[Dict[str, Any]]:
        clauses = [("slug", "==", slug)]
        if published_only:
            clauses.append(("published", "==", True))
        rows = self._stream(self._where(*clauses).limit(1))
        return rows[0] if rows else None

    def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Raises ValueError('slug_exists')."""
        if self.get_by_slug(doc["slug"], published_only=False):
            raise ValueError("slug_exists")
        post_id = str(uuid.uuid4())
        self._col().document(post_id).set(doc, merge=False)
        return {**doc, "id": post_id}

    def update(self, doc_id: str, data: Dict[str, Any]) -> None:
        super().update(doc_id, {**data, "last_updated": utcnow()})

    def list(self, published_only: bool = True, category: Optional[str] = None) -> List[Dict[str, Any]]:
        clauses = []
        if published_only:
            clauses.append(("published", "==", True))
        if category:
            clauses.append(("category", "==", category))
        rows = self._stream(self._where(*clauses))
        rows.sort(key=lambda p: p.get("publish_date") or p.get("created_at"), reverse=True)
        return rows

    def related(self, post: Dict[str, Any], limit: int = 3) -> List[Dict[str, Any]]:
        rows = [p for p in self.list(published_only=True, category=post.get("category"))
                if p.get("slug") != post.get("slug")]
        return rows[:limit]


class AdminMessageRepository(FirestoreRepository):
    collection_name = COL_ADMIN_MESSAGES

    def create(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        msg_id = str(uuid.uuid4())
        self._col().document(msg_id).set(doc, merge=False)
        return {**doc, "id": msg_id}

    def update(self, doc_id: str, data: Dict[str, Any]) -> None:
        super().update(doc_id, {**data, "updated_at": utcnow()})

    def list(self, medication_id: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
        clauses = []
        if medication_id:
            clauses.append(("medication_id", "==", medication_id))
        if category:
            clauses.append(("category", "==", category))
        rows = self._stream(self._where(*clauses))
        rows.sort(key=lambda m: m.get("created_at"), reverse=True)
        return rows

    def current_for_medication(self, medication_id: str) -> List[Dict[str, Any]]:
        now = utcnow()
        rows = [m for m in self.list(medication_id=medication_id) if message_is_current(m, now)]
        # priority desc, newest first within a priority
        rows.sort(key=lambda m: (-int(m.get("priority") or 0), -m["created_at"].timestamp()))
        return rows


class ContactRepository(FirestoreRepository):
    collection_name = COL_CONTACTS

    def create(self, doc: Dict[str, Any]) -> str:
        contact_id = str(uuid.uuid4())
        self._col().document(contact_id).set(doc, merge=False)
        return contact_id
