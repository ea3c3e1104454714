from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from campaigns.subscriptions import SubscriptionService
from models.documents import new_admin_message, new_blog_post, read_time_minutes, utcnow
from repos.base import paginate
from repos.content_repo import AdminMessageRepository, BlogRepository
from security.operator_auth import OperatorClaims, operator_identity
from utils.slugs import blog_slug

router = APIRouter()

BlogCategory = Literal["Weight Loss", "Men's Health", "Women's Health", "Hair Loss", "Money Saving", "General Health"]
MessageCategory = Literal["warning", "promo", "information"]


class BlogPostIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    excerpt: str = Field(default="", max_length=300)
    slug: Optional[str] = None
    author: str = "PriceMyMeds Team"
    category: BlogCategory = "General Health"
    tags: List[str] = Field(default_factory=list)
    featured_image: str = ""
    meta_description: str = Field(default="", max_length=160)
    meta_keywords: List[str] = Field(default_factory=list)
    published: bool = False


class BlogPostPatch(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    content: Optional[str] = None
    excerpt: Optional[str] = Field(default=None, max_length=300)
    author: Optional[str] = None
    category: Optional[BlogCategory] = None
    tags: Optional[List[str]] = None
    featured_image: Optional[str] = None
    meta_description: Optional[str] = Field(default=None, max_length=160)
    meta_keywords: Optional[List[str]] = None
    published: Optional[bool] = None


class AdminMessageIn(BaseModel):
    medication_id: str = Field(min_length=1)
    medication_name: str = ""
    category: MessageCategory = "information"
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    priority: int = 0


class AdminMessagePatch(BaseModel):
    medication_name: Optional[str] = None
    category: Optional[MessageCategory] = None
    title: Optional[str] = None
    message: Optional[str] = None
    active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    priority: Optional[int] = None


# -------- Blog --------
@router.get("/blog/posts")
def admin_list_posts(claims: dict = OperatorClaims):
    return {"ok": True, "posts": BlogRepository().list(published_only=False)}


@router.get("/blog/posts/{post_id}")
def admin_get_post(post_id: str, claims: dict = OperatorClaims):
    post = BlogRepository().get(post_id)
    if post is None:
        raise HTTPException(status_code=404, detail="post_not_found")
    return {"ok": True, "post": post}


@router.post("/blog/posts")
def admin_create_post(body: BlogPostIn, claims: dict = OperatorClaims):
    data = body.model_dump()
    data["slug"] = blog_slug(data.get("slug") or data["title"])
    if not data["slug"]:
        raise HTTPException(status_code=400, detail="invalid_slug")
    try:
        post = BlogRepository().create(new_blog_post(data))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JSONResponse(status_code=201, content={"ok": True, "id": post["id"], "slug": post["slug"]})


@router.put("/blog/posts/{post_id}")
def admin_update_post(post_id: str, body: BlogPostPatch, claims: dict = OperatorClaims):
    repo = BlogRepository()
    post = repo.get(post_id)
    if post is None:
        raise HTTPException(status_code=404, detail="post_not_found")
    patch = body.model_dump(exclude_none=True)
    if "content" in patch:
        patch["read_time"] = read_time_minutes(patch["content"])
    if patch.get("published") and not post.get("publish_date"):
        patch["publish_date"] = utcnow()
    repo.update(post_id, patch)
    return {"ok": True}


@router.delete("/blog/posts/{post_id}")
def admin_delete_post(post_id: str, claims: dict = OperatorClaims):
    repo = BlogRepository()
    if repo.get(post_id) is None:
        raise HTTPException(status_code=404, detail="post_not_found")
    repo.delete(post_id)
    return {"ok": True}


@router.patch("/blog/posts/{post_id}/publish")
def admin_toggle_publish(post_id: str, claims: dict = OperatorClaims):
    repo = BlogRepository()
    post = repo.get(post_id)
    if post is None:
        raise HTTPException(status_code=404, detail="post_not_found")
    published = not post.get("published", False)
    patch = {"published": published}
    if published and not post.get("publish_date"):
        patch["publish_date"] = utcnow()
    repo.update(post_id, patch)
    return {"ok": True, "published": published}


# -------- Admin messages --------
@router.get("/admin-messages")
def admin_list_messages(medication_id: Optional[str] = None, claims: dict = OperatorClaims):
    return {"ok": True, "messages": AdminMessageRepository().list(medication_id=medication_id)}


@router.post("/admin-messages")
def admin_create_message(body: AdminMessageIn, claims: dict = OperatorClaims):
    if body.end_date and body.start_date and body.end_date <= body.start_date:
        raise HTTPException(status_code=400, detail="end_date_before_start_date")
    msg = AdminMessageRepository().create(new_admin_message(body.model_dump(), created_by=operator_identity(claims)))
    return JSONResponse(status_code=201, content={"ok": True, "id": msg["id"]})


@router.put("/admin-messages/{message_id}")
def admin_update_message(message_id: str, body: AdminMessagePatch, claims: dict = OperatorClaims):
    repo = AdminMessageRepository()
    if repo.get(message_id) is None:
        raise HTTPException(status_code=404, detail="message_not_found")
    repo.update(message_id, body.model_dump(exclude_unset=True))
    return {"ok": True}


@router.delete("/admin-messages/{message_id}")
def admin_delete_message(message_id: str, claims: dict = OperatorClaims):
    repo = AdminMessageRepository()
    if repo.get(message_id) is None:
        raise HTTPException(status_code=404, detail="message_not_found")
    repo.delete(message_id)
    return {"ok": True}


@router.patch("/admin-messages/{message_id}/toggle")
def admin_toggle_message(message_id: str, claims: dict = OperatorClaims):
    repo = AdminMessageRepository()
    msg = repo.get(message_id)
    if msg is None:
        raise HTTPException(status_code=404, detail="message_not_found")
    active = not msg.get("active", False)
    repo.update(message_id, {"active": active})
    return {"ok": True, "active": active}


# -------- Subscriptions --------
@router.get("/subscriptions")
def admin_list_subscriptions(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    status: Optional[str] = None,
    claims: dict = OperatorClaims,
):
    svc = SubscriptionService()
    out = paginate(svc.repo.list(status=status), page, limit)
    return {"ok": True, "subscriptions": out["items"], "pagination": out["pagination"], "stats": svc.stats()}


@router.get("/subscriptions/stats")
def admin_subscription_stats(claims: dict = OperatorClaims):
    return {"ok": True, "stats": SubscriptionService().stats()}


@router.delete("/subscriptions/{subscription_id}")
def admin_delete_subscription(subscription_id: str, claims: dict = OperatorClaims):
    svc = SubscriptionService()
    if svc.repo.get(subscription_id) is None:
        raise HTTPException(status_code=404, detail="subscription_not_found")
    svc.repo.delete(subscription_id)
    return {"ok": True}
