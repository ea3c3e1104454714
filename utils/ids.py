from __future__ import annotations

import hashlib
import json


def price_key(medication_id: str, pharmacy_id: str, dosage: str) -> str:
    """
    Stable document id for a price row.

    One document per (medication_id, pharmacy_id, dosage): writing the same
    triple twice addresses the same document.
    """
    identity = {
        "medication_id": (medication_id or "").strip(),
        "pharmacy_id": (pharmacy_id or "").strip(),
        "dosage": (dosage or "").strip(),
    }
    b = json.dumps(identity, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha1(b).hexdigest()


def email_doc_id(email: str) -> str:
    # Subscriptions are keyed by address so uniqueness is enforced by the store.
    e = (email or "").strip().lower()
    if not e:
        return ""
    h = hashlib.sha256(e.encode("utf-8")).hexdigest()
    return f"e_{h}"
