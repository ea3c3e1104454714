from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from config.settings import settings
from messaging.dispatcher import MessageDispatcher
from messaging.templates import contact_notification
from models.documents import utcnow
from repos.content_repo import AdminMessageRepository, BlogRepository, ContactRepository
from utils.request_context import client_meta

router = APIRouter()
log = logging.getLogger("medprice.routers.content")


# -------- Blog --------
@router.get("/blog/posts")
def list_posts(category: Optional[str] = None, limit: int = Query(default=10, ge=1, le=50),
               offset: int = Query(default=0, ge=0)):
    rows = BlogRepository().list(published_only=True, category=category)
    for r in rows:
        r.pop("content", None)
    return {"ok": True, "total": len(rows), "posts": rows[offset:offset + limit]}


@router.get("/blog/posts/{slug}")
def get_post(slug: str):
    post = BlogRepository().get_by_slug(slug)
    if not post:
        raise HTTPException(status_code=404, detail="post_not_found")
    return {"ok": True, "post": post}


@router.get("/blog/posts/{slug}/related")
def related_posts(slug: str):
    repo = BlogRepository()
    post = repo.get_by_slug(slug)
    if not post:
        raise HTTPException(status_code=404, detail="post_not_found")
    rows = repo.related(post, limit=3)
    for r in rows:
        r.pop("content", None)
    return {"ok": True, "posts": rows}


# -------- Admin messages (public read) --------
@router.get("/admin-messages/medication/{medication_id}")
def medication_messages(medication_id: str):
    return {"ok": True, "messages": AdminMessageRepository().current_for_medication(medication_id)}


# -------- Contact --------
class ContactRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=5000)


@router.post("/contact")
def submit_contact(body: ContactRequest, request: Request):
    doc = {**body.model_dump(), **client_meta(request), "created_at": utcnow()}
    contact_id = ContactRepository().create(doc)

    emailed = False
    if settings.ADMIN_EMAIL:
        msg = contact_notification(doc)
        resp = MessageDispatcher().send_email(
            to=settings.ADMIN_EMAIL, subject=msg["subject"], html=msg["html"], reply_to=body.email,
        )
        emailed = bool(resp.get("ok"))
        if not emailed:
            log.warning("contact_notification_failed",
                        extra={"extra": {"event": "contact_notification_failed", "contact_id": contact_id,
                                         "error": resp.get("error")}})
    return JSONResponse(
        status_code=201,
        content={"ok": True, "id": contact_id, "notified": emailed,
                 "message": "Thank you for contacting us. We'll get back to you soon."},
    )
