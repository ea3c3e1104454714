from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from pricing.aggregation import PRICE_SORTS, PriceQueryService

router = APIRouter()


@router.get("/prices/medication/{medication_id}")
def prices_for_medication(medication_id: str, dosage: Optional[str] = None, sort: str = "price"):
    if sort not in PRICE_SORTS:
        raise HTTPException(status_code=400, detail="invalid_sort")
    rows = PriceQueryService().prices_for_medication(medication_id, dosage=dosage, sort=sort)
    return {"ok": True, "count": len(rows), "prices": rows}


@router.get("/prices/lowest/{medication_id}")
def lowest_price(medication_id: str, dosage: Optional[str] = None):
    best = PriceQueryService().lowest_price(medication_id, dosage=dosage)
    if best is None:
        raise HTTPException(status_code=404, detail="no_prices_found")
    return {"ok": True, "lowest": best}


@router.get("/prices/matrix/{subcategory_id}")
def price_matrix(subcategory_id: str):
    return {"ok": True, **PriceQueryService().build_matrix(subcategory_id)}


@router.get("/prices/recent-updates")
def recent_updates(limit: int = Query(default=20, ge=1, le=200), since: Optional[datetime] = None):
    rows = PriceQueryService().recent_updates(since=since, limit=limit)
    return {"ok": True, "count": len(rows), "updates": rows}
