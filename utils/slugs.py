from __future__ import annotations

import re

_WS = re.compile(r"\s+")


def medication_slug(name: str) -> str:
    """'Finasteride 1mg/5%' -> 'finasteride-1mg-5pct'."""
    s = _WS.sub("-", (name or "").strip().lower())
    return s.replace("%", "pct").replace("/", "-")


def pharmacy_slug(name: str) -> str:
    s = _WS.sub("-", (name or "").strip().lower())
    return re.sub(r"[^a-z0-9-]", "", s)


def form_slug(form: str) -> str:
    return _WS.sub("-", (form or "").strip().lower())


def blog_slug(title: str) -> str:
    s = re.sub(r"[^a-z0-9]+", "-", (title or "").lower())
    return s.strip("-")
