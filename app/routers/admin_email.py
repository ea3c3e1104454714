from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from campaigns.service import CampaignService
from security.operator_auth import OperatorClaims, operator_identity

router = APIRouter()
log = logging.getLogger("medprice.routers.admin_email")


class CampaignContent(BaseModel):
    custom_text: str = ""
    include_price_drops: bool = False
    include_new_medications: bool = False
    include_promotions: bool = False
    price_drops_data: List[Dict[str, Any]] = Field(default_factory=list)
    new_medications_data: List[Dict[str, Any]] = Field(default_factory=list)
    promotions_data: List[Dict[str, Any]] = Field(default_factory=list)


class PreviewRequest(BaseModel):
    subject: str = ""
    content: CampaignContent


class TestRequest(BaseModel):
    subject: str = Field(min_length=1)
    content: CampaignContent
    test_email: EmailStr


class SendRequest(BaseModel):
    subject: str = Field(min_length=1)
    content: CampaignContent
    target_audience: Literal["all", "price_drops", "new_medications", "promotions", "weekly_digest"]


def _send_in_background(campaign_id: str) -> None:
    try:
        CampaignService().send_campaign(campaign_id)
    except Exception as e:
        # already marked failed and logged by the service
        log.error(
            "campaign_background_failed",
            extra={"extra": {"event": "campaign_background_failed", "campaign_id": campaign_id,
                             "error_type": type(e).__name__}},
        )


@router.get("/email/data")
def email_composer_data(claims: dict = OperatorClaims):
    return {"ok": True, **CampaignService().composer_data()}


@router.post("/email/preview")
def email_preview(body: PreviewRequest, claims: dict = OperatorClaims):
    svc = CampaignService()
    return {"ok": True, "subject": body.subject, "html": svc.preview(body.content.model_dump())}


@router.post("/email/test")
def email_test(body: TestRequest, claims: dict = OperatorClaims):
    out = CampaignService().send_test(body.subject, body.content.model_dump(), body.test_email, operator_identity(claims))
    if not out["ok"]:
        raise HTTPException(status_code=502, detail=out.get("error") or "send_failed")
    return {"ok": True, "campaign_id": out["campaign_id"], "message": f"Test email sent to {body.test_email}"}


@router.post("/email/send")
def email_send(body: SendRequest, background: BackgroundTasks, claims: dict = OperatorClaims):
    svc = CampaignService()
    recipients = svc.get_recipients(body.target_audience)
    if not recipients:
        raise HTTPException(status_code=400, detail="no_recipients")
    campaign_id = svc.create(body.subject, body.content.model_dump(), body.target_audience, operator_identity(claims))
    background.add_task(_send_in_background, campaign_id)
    return JSONResponse(
        status_code=202,
        content={"ok": True, "campaign_id": campaign_id, "recipient_count": len(recipients), "status": "sending"},
    )


@router.get("/email/campaigns")
def email_campaigns(limit: int = Query(default=50, ge=1, le=200), claims: dict = OperatorClaims):
    return {"ok": True, "campaigns": CampaignService().campaigns.list_recent(limit=limit)}


@router.get("/email/campaigns/{campaign_id}")
def email_campaign_detail(campaign_id: str, claims: dict = OperatorClaims):
    c = CampaignService().campaigns.get(campaign_id)
    if c is None:
        raise HTTPException(status_code=404, detail="campaign_not_found")
    return {"ok": True, "campaign": c}
