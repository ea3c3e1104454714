from __future__ import annotations

from contextvars import ContextVar
from typing import Any, Dict

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")

def set_request_id(rid: str) -> None:
    _request_id_var.set(rid or "")

def get_request_id() -> str:
    return _request_id_var.get() or ""

def clear_request_id() -> None:
    _request_id_var.set("")


def client_meta(request: Any) -> Dict[str, str]:
    """ip_address/user_agent of the caller, honouring X-Forwarded-For from the load balancer."""
    fwd = request.headers.get("x-forwarded-for") or ""
    ip = fwd.split(",")[0].strip() if fwd else ""
    if not ip and getattr(request, "client", None):
        ip = request.client.host or ""
    return {"ip_address": ip, "user_agent": request.headers.get("user-agent") or ""}
