from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from alerts.service import PriceAlertService
from jobs.scheduler import describe_jobs, get_alert_engine, get_digest_job
from models.documents import new_medication, new_pharmacy, subcategory_entries
from pricing.aggregation import PriceQueryService
from repos.audit_log_repo import AuditLogRepository
from repos.base import paginate
from repos.category_repo import CategoryRepository
from repos.medication_repo import MedicationRepository
from repos.pharmacy_repo import PharmacyRepository
from repos.price_repo import PriceRepository
from security.operator_auth import OperatorClaims, operator_identity
from utils.request_context import client_meta
from utils.slugs import medication_slug, pharmacy_slug

router = APIRouter()


class MedicationIn(BaseModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    subcategory: str = Field(min_length=1)
    id: Optional[str] = None
    description: str = ""
    dosage: List[str] = Field(default_factory=list)
    form: str = ""
    generic_name: str = ""
    search_terms: List[str] = Field(default_factory=list)


class MedicationPatch(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    description: Optional[str] = None
    dosage: Optional[List[str]] = None
    form: Optional[str] = None
    generic_name: Optional[str] = None
    search_terms: Optional[List[str]] = None
    active: Optional[bool] = None


class PriceIn(BaseModel):
    medication_id: str = Field(min_length=1)
    pharmacy_id: str = Field(min_length=1)
    dosage: str = Field(min_length=1)
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    in_stock: bool = True
    link: str = ""


class BulkPricesIn(BaseModel):
    prices: List[PriceIn]


class PricePatch(BaseModel):
    price: Optional[float] = Field(default=None, ge=0)
    in_stock: Optional[bool] = None
    link: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)


class PharmacyIn(BaseModel):
    name: str = Field(min_length=1)
    website: str = Field(min_length=1)
    id: Optional[str] = None
    rating: float = Field(default=0, ge=0, le=5)
    delivery_time: str = "1-3 days"
    prescription_required: bool = True
    logo: str = ""
    verified: bool = False


class PharmacyPatch(BaseModel):
    name: Optional[str] = None
    website: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    delivery_time: Optional[str] = None
    prescription_required: Optional[bool] = None
    logo: Optional[str] = None
    active: Optional[bool] = None
    verified: Optional[bool] = None


class SubcategoryIn(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    order: Optional[int] = None
    active: bool = True


class CategoryIn(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    order: int = 0
    active: bool = True
    subcategories: Optional[List[SubcategoryIn]] = None


def _audit(request: Request, claims: dict, action: str, entity: str, entity_id: str, **changes: Any) -> None:
    AuditLogRepository().log_action(
        operator_identity(claims), action, entity, entity_id, changes=changes, meta=client_meta(request),
    )


@router.get("/whoami")
def whoami(claims: dict = OperatorClaims):
    return {"ok": True, "claims": {"sub": claims.get("sub"), "email": claims.get("email"), "aud": claims.get("aud")}}


# -------- Medications --------
@router.get("/medications")
def admin_list_medications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    category: Optional[str] = None,
    search: Optional[str] = None,
    claims: dict = OperatorClaims,
):
    rows = MedicationRepository().list(category=category, search=search, active_only=False)
    out = paginate(rows, page, limit)
    return {"ok": True, "medications": out["items"], "pagination": out["pagination"]}


@router.get("/medications/{medication_id}")
def admin_get_medication(medication_id: str, claims: dict = OperatorClaims):
    grid = PriceQueryService().build_price_grid(medication_id)
    if grid is None:
        raise HTTPException(status_code=404, detail="medication_not_found")
    return {"ok": True, **grid}


@router.post("/medications")
def admin_create_medication(body: MedicationIn, request: Request, claims: dict = OperatorClaims):
    data = body.model_dump()
    data["id"] = medication_slug(data.get("id") or data["name"])
    if not data["id"]:
        raise HTTPException(status_code=400, detail="invalid_medication_id")
    try:
        med = MedicationRepository().create(new_medication(data))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _audit(request, claims, "medication_create", "medication", med["id"], after={"name": med["name"]})
    return JSONResponse(status_code=201, content={"ok": True, "id": med["id"]})


@router.put("/medications/{medication_id}")
def admin_update_medication(medication_id: str, body: MedicationPatch, request: Request, claims: dict = OperatorClaims):
    repo = MedicationRepository()
    before = repo.get(medication_id)
    if before is None:
        raise HTTPException(status_code=404, detail="medication_not_found")
    patch = body.model_dump(exclude_none=True)
    repo.update(medication_id, patch)
    _audit(request, claims, "medication_update", "medication", medication_id,
           before={k: before.get(k) for k in patch}, after=patch)
    return {"ok": True, "medication": {**before, **patch}}


@router.delete("/medications/{medication_id}")
def admin_delete_medication(medication_id: str, request: Request, claims: dict = OperatorClaims):
    repo = MedicationRepository()
    if repo.get(medication_id) is None:
        raise HTTPException(status_code=404, detail="medication_not_found")
    repo.deactivate(medication_id)
    _audit(request, claims, "medication_delete", "medication", medication_id, after={"active": False})
    return {"ok": True, "message": "Medication deactivated"}


# -------- Prices --------
@router.post("/prices/bulk")
def admin_bulk_prices(body: BulkPricesIn, request: Request, claims: dict = OperatorClaims):
    meds = MedicationRepository()
    pharmacies = PharmacyRepository(meds.db)
    unknown_meds = sorted({p.medication_id for p in body.prices if meds.get(p.medication_id) is None})
    unknown_pharmacies = sorted({p.pharmacy_id for p in body.prices if pharmacies.get(p.pharmacy_id) is None})
    if unknown_meds or unknown_pharmacies:
        raise HTTPException(
            status_code=400,
            detail={"error": "unknown_references", "medications": unknown_meds, "pharmacies": unknown_pharmacies},
        )

    repo = PriceRepository(meds.db)
    modified = 0
    upserted = 0
    for p in body.prices:
        data = p.model_dump()
        res = repo.upsert(p.medication_id, p.pharmacy_id, p.dosage, {**data, "source": "manual"})
        if res["created"]:
            upserted += 1
        else:
            modified += 1
    _audit(request, claims, "price_bulk_update", "prices", "", total=len(body.prices), modified=modified,
           upserted=upserted, medication_ids=sorted({p.medication_id for p in body.prices}))
    return {"ok": True, "modified": modified, "upserted": upserted}


@router.put("/prices/{record_id}")
def admin_update_price(record_id: str, body: PricePatch, request: Request, claims: dict = OperatorClaims):
    repo = PriceRepository()
    before = repo.get(record_id)
    if before is None:
        raise HTTPException(status_code=404, detail="price_not_found")
    patch = body.model_dump(exclude_none=True)
    repo.update(record_id, {**patch, "source": "manual"})
    _audit(request, claims, "price_update", "price", record_id, record_id=record_id,
           medication_id=before.get("medication_id", ""), pharmacy_id=before.get("pharmacy_id", ""),
           dosage=before.get("dosage", ""), old_price=before.get("price"), new_price=patch.get("price", before.get("price")))
    return {"ok": True, "price": {**before, **patch}}


@router.delete("/prices/{record_id}")
def admin_delete_price(record_id: str, request: Request, claims: dict = OperatorClaims):
    repo = PriceRepository()
    before = repo.get(record_id)
    if before is None:
        raise HTTPException(status_code=404, detail="price_not_found")
    repo.delete(record_id)
    _audit(request, claims, "price_update", "price", record_id, record_id=record_id,
           medication_id=before.get("medication_id", ""), pharmacy_id=before.get("pharmacy_id", ""),
           dosage=before.get("dosage", ""), old_price=before.get("price"), deleted=True)
    return {"ok": True, "message": "Price deleted"}


@router.get("/prices/grid/{medication_id}")
def admin_price_grid(medication_id: str, claims: dict = OperatorClaims):
    grid = PriceQueryService().build_price_grid(medication_id)
    if grid is None:
        raise HTTPException(status_code=404, detail="medication_not_found")
    return {"ok": True, **grid}


# -------- Pharmacies --------
@router.get("/pharmacies")
def admin_list_pharmacies(claims: dict = OperatorClaims):
    return {"ok": True, "pharmacies": PharmacyRepository().list(active_only=False)}


@router.get("/pharmacies/{pharmacy_id}")
def admin_get_pharmacy(pharmacy_id: str, claims: dict = OperatorClaims):
    repo = PharmacyRepository()
    p = repo.get(pharmacy_id)
    if p is None:
        raise HTTPException(status_code=404, detail="pharmacy_not_found")
    return {"ok": True, "pharmacy": p, "price_count": len(PriceRepository(repo.db).list_for_pharmacy(pharmacy_id))}


@router.post("/pharmacies")
def admin_create_pharmacy(body: PharmacyIn, request: Request, claims: dict = OperatorClaims):
    data = body.model_dump()
    data["id"] = pharmacy_slug(data.get("id") or data["name"])
    if not data["id"]:
        raise HTTPException(status_code=400, detail="invalid_pharmacy_id")
    try:
        p = PharmacyRepository().create(new_pharmacy(data))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    _audit(request, claims, "pharmacy_create", "pharmacy", p["id"], after={"name": p["name"]})
    return JSONResponse(status_code=201, content={"ok": True, "id": p["id"]})


@router.put("/pharmacies/{pharmacy_id}")
def admin_update_pharmacy(pharmacy_id: str, body: PharmacyPatch, request: Request, claims: dict = OperatorClaims):
    repo = PharmacyRepository()
    before = repo.get(pharmacy_id)
    if before is None:
        raise HTTPException(status_code=404, detail="pharmacy_not_found")
    patch = body.model_dump(exclude_none=True)
    repo.update(pharmacy_id, patch)
    _audit(request, claims, "pharmacy_update", "pharmacy", pharmacy_id,
           before={k: before.get(k) for k in patch}, after=patch)
    return {"ok": True, "pharmacy": {**before, **patch}}


@router.delete("/pharmacies/{pharmacy_id}")
def admin_delete_pharmacy(pharmacy_id: str, request: Request, claims: dict = OperatorClaims):
    repo = PharmacyRepository()
    before = repo.get(pharmacy_id)
    if before is None:
        raise HTTPException(status_code=404, detail="pharmacy_not_found")
    removed = PriceRepository(repo.db).delete_for_pharmacy(pharmacy_id)
    repo.delete(pharmacy_id)
    _audit(request, claims, "pharmacy_delete", "pharmacy", pharmacy_id,
           before={"name": before.get("name")}, cascade_deleted=removed)
    return {"ok": True, "prices_deleted": removed}


# -------- Categories --------
@router.post("/categories")
def admin_upsert_category(body: CategoryIn, request: Request, claims: dict = OperatorClaims):
    repo = CategoryRepository()
    data: Dict[str, Any] = {"name": body.name, "order": body.order, "active": body.active}
    if body.subcategories is not None:
        data["subcategories"] = subcategory_entries(body.id, [s.model_dump() for s in body.subcategories])
    before = repo.get(body.id)
    repo.upsert(body.id, data)
    _audit(request, claims, "category_update", "category", body.id,
           before={"name": before.get("name")} if before else None, after={"name": body.name})
    return {"ok": True, "id": body.id, "created": before is None}


@router.post("/categories/{category_id}/subcategories")
def admin_add_subcategory(category_id: str, body: SubcategoryIn, request: Request, claims: dict = OperatorClaims):
    try:
        added = CategoryRepository().add_subcategory(category_id, body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not added:
        raise HTTPException(status_code=409, detail="subcategory_exists")
    _audit(request, claims, "category_update", "category", category_id, after={"subcategory_added": body.id})
    return {"ok": True}


# -------- Audit, stats, jobs --------
@router.get("/audit-logs")
def admin_audit_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    action: Optional[str] = None,
    user: Optional[str] = None,
    claims: dict = OperatorClaims,
):
    out = paginate(AuditLogRepository().list(action=action, user=user), page, limit)
    return {"ok": True, "logs": out["items"], "pagination": out["pagination"]}


@router.get("/stats")
def admin_stats(claims: dict = OperatorClaims):
    return {"ok": True, "stats": PriceQueryService().dashboard_stats()}


@router.get("/jobs")
def admin_jobs(claims: dict = OperatorClaims):
    engine = get_alert_engine()
    digest = get_digest_job()
    return {"ok": True, "jobs": describe_jobs(), "price_alert_scan_running": engine.running,
            "weekly_digest_running": digest.running}


@router.post("/price-alerts/run")
def admin_run_alert_scan(claims: dict = OperatorClaims):
    return {"ok": True, "result": get_alert_engine().run_cycle()}


@router.get("/price-alerts")
def admin_alerts_for_email(email: str, claims: dict = OperatorClaims):
    return {"ok": True, "alerts": PriceAlertService().list_for_email(email)}


@router.post("/weekly-digest/run")
def admin_run_weekly_digest(claims: dict = OperatorClaims):
    return {"ok": True, "result": get_digest_job().run()}


@router.post("/weekly-digest/test")
def admin_weekly_digest_test(email: str, claims: dict = OperatorClaims):
    resp = get_digest_job().send_test(email)
    if not resp.get("ok"):
        raise HTTPException(status_code=502, detail=resp.get("error") or "send_failed")
    return {"ok": True}
