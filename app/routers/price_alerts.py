from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from alerts.service import AlertNotActive, AlertNotFound, PriceAlertService
from utils.request_context import client_meta

router = APIRouter()
log = logging.getLogger("medprice.routers.price_alerts")


class LowestPharmacy(BaseModel):
    name: str
    price: float


class CreatePriceAlertRequest(BaseModel):
    email: EmailStr
    medication_id: str = Field(min_length=1)
    medication_name: str = Field(min_length=1)
    dosage: Optional[str] = None
    current_price: float = Field(ge=0)
    target_price: float = Field(gt=0)
    lowest_pharmacy: Optional[LowestPharmacy] = None


@router.post("/price-alerts")
def create_price_alert(body: CreatePriceAlertRequest, request: Request):
    data = body.model_dump()
    data["medication_id"] = data["medication_id"].strip()
    data["medication_name"] = data["medication_name"].strip()
    data.update(client_meta(request))
    out = PriceAlertService().create_or_refresh(data)
    if out["created"]:
        return JSONResponse(
            status_code=201,
            content={"ok": True, "id": out["id"], "message": "Price alert created! We'll notify you when the price drops."},
        )
    return {"ok": True, "id": out["id"], "message": "Price alert updated successfully"}


@router.delete("/price-alerts/{alert_id}")
def cancel_price_alert(alert_id: str):
    try:
        PriceAlertService().cancel(alert_id)
    except AlertNotFound:
        raise HTTPException(status_code=404, detail="price_alert_not_found")
    except AlertNotActive as e:
        raise HTTPException(status_code=409, detail=f"alert_not_active:{e.status}")
    return {"ok": True, "message": "Price alert cancelled successfully"}
