from __future__ import annotations

from typing import Dict, Literal, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr

from campaigns.subscriptions import SubscriptionError, SubscriptionService

router = APIRouter()

_STATUS_BY_CODE = {
    "email_required": 400,
    "already_subscribed": 400,
    "token_or_email_required": 400,
    "subscription_not_found": 404,
}


class SubscribeRequest(BaseModel):
    email: EmailStr
    source: Literal["popup", "footer", "checkout", "manual"] = "popup"
    preferences: Optional[Dict[str, bool]] = None


class UnsubscribeRequest(BaseModel):
    token: Optional[str] = None
    email: Optional[EmailStr] = None


class PreferencesRequest(BaseModel):
    email: EmailStr
    preferences: Dict[str, bool]


def _raise(e: SubscriptionError):
    raise HTTPException(status_code=_STATUS_BY_CODE.get(e.code, 400), detail=e.code)


@router.post("/subscriptions/subscribe")
def subscribe(body: SubscribeRequest):
    try:
        out = SubscriptionService().subscribe(body.email, source=body.source, preferences=body.preferences)
    except SubscriptionError as e:
        _raise(e)
    if out["reactivated"]:
        return {"ok": True, "message": "Welcome back! Your subscription has been reactivated."}
    return JSONResponse(status_code=201, content={"ok": True, "message": "Successfully subscribed to updates"})


@router.post("/subscriptions/unsubscribe")
def unsubscribe(body: UnsubscribeRequest):
    try:
        SubscriptionService().unsubscribe(token=body.token, email=body.email)
    except SubscriptionError as e:
        _raise(e)
    return {"ok": True, "message": "Successfully unsubscribed"}


@router.put("/subscriptions/preferences")
def update_preferences(body: PreferencesRequest):
    try:
        prefs = SubscriptionService().update_preferences(body.email, body.preferences)
    except SubscriptionError as e:
        _raise(e)
    return {"ok": True, "preferences": prefs}
