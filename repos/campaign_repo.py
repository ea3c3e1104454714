from __future__ import annotations

import uuid
from typing import Any, Dict, List

from google.cloud import firestore

from models.schema import COL_EMAIL_CAMPAIGNS
from repos.base import FirestoreRepository


class CampaignRepository(FirestoreRepository):
    collection_name = COL_EMAIL_CAMPAIGNS

    def create(self, doc: Dict[str, Any]) -> str:
        campaign_id = str(uuid.uuid4())
        self._col().document(campaign_id).set(doc, merge=False)
        return campaign_id

    def append_outcomes(self, campaign_id: str, outcomes: List[Dict[str, Any]]) -> None:
        """Append one chunk of recipient outcomes and bump the stats counters."""
        sent = sum(1 for o in outcomes if o.get("status") == "sent")
        failed = len(outcomes) - sent
        self._col().document(campaign_id).update({
            "recipients": firestore.ArrayUnion(outcomes),
            "stats.total_sent": firestore.Increment(sent),
            "stats.total_failed": firestore.Increment(failed),
        })

    def list_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        q = self._col().order_by("created_at", direction=firestore.Query.DESCENDING).limit(limit)
        rows = self._stream(q)
        for r in rows:
            # summary view
            r.pop("recipients", None)
        return rows
