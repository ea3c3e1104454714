from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from pricing.aggregation import PriceQueryService
from repos.category_repo import CategoryRepository
from repos.medication_repo import MedicationRepository
from repos.pharmacy_repo import PharmacyRepository

router = APIRouter()


# -------- Categories --------
@router.get("/categories")
def list_categories():
    return {"ok": True, "categories": CategoryRepository().list()}


@router.get("/categories/{category_id}")
def get_category(category_id: str):
    cat = CategoryRepository().get(category_id)
    if not cat or not cat.get("active", True):
        raise HTTPException(status_code=404, detail="category_not_found")
    return {"ok": True, "category": cat}


@router.get("/categories/{category_id}/{subcategory_id}")
def get_subcategory(category_id: str, subcategory_id: str):
    sub = CategoryRepository().get_subcategory(category_id, subcategory_id)
    if not sub:
        raise HTTPException(status_code=404, detail="subcategory_not_found")
    meds = MedicationRepository().list(category=category_id, subcategory=subcategory_id)
    return {"ok": True, "subcategory": sub, "medications": meds}


# -------- Medications --------
@router.get("/medications")
def list_medications(category: Optional[str] = None, subcategory: Optional[str] = None, search: Optional[str] = None):
    meds = MedicationRepository().list(category=category, subcategory=subcategory, search=search)
    return {"ok": True, "count": len(meds), "medications": meds}


@router.get("/medications/by-subcategory/{subcategory_id}")
def medications_by_subcategory(subcategory_id: str):
    return {"ok": True, "medications": MedicationRepository().list(subcategory=subcategory_id)}


@router.get("/medications/search/{query}")
def search_medications(query: str, limit: int = Query(default=20, ge=1, le=100)):
    q = query.strip()
    if len(q) < 2:
        raise HTTPException(status_code=400, detail="query_too_short")
    return {"ok": True, "medications": MedicationRepository().list(search=q)[:limit]}


@router.get("/medications/{medication_id}")
def get_medication(medication_id: str):
    svc = PriceQueryService()
    med = svc.medications.get(medication_id)
    if not med or not med.get("active", True):
        raise HTTPException(status_code=404, detail="medication_not_found")
    return {"ok": True, "medication": med, "prices": svc.prices_for_medication(medication_id)}


@router.get("/medications/{medication_id}/comparison")
def medication_comparison(medication_id: str, dosage: Optional[str] = None):
    out = PriceQueryService().build_comparison(medication_id, dosage=dosage)
    if out is None:
        raise HTTPException(status_code=404, detail="medication_not_found")
    return {"ok": True, **out}


# -------- Pharmacies --------
@router.get("/pharmacies")
def list_pharmacies():
    return {"ok": True, "pharmacies": PharmacyRepository().list(active_only=True)}


@router.get("/pharmacies/top/rated")
def top_rated_pharmacies(limit: int = Query(default=10, ge=1, le=50), min_rating: float = Query(default=4.0, ge=0, le=5)):
    return {"ok": True, "pharmacies": PharmacyRepository().top_rated(min_rating=min_rating, limit=limit)}


@router.get("/pharmacies/{pharmacy_id}")
def get_pharmacy(pharmacy_id: str):
    p = PharmacyRepository().get(pharmacy_id)
    if not p or not p.get("active", True):
        raise HTTPException(status_code=404, detail="pharmacy_not_found")
    return {"ok": True, "pharmacy": p}
