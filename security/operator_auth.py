from __future__ import annotations

import logging
from typing import Any, Dict, Set

from fastapi import Depends, HTTPException, Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from config.settings import settings

log = logging.getLogger("medprice.operator_auth")


def _csv_set(v: str) -> Set[str]:
    return {x.strip() for x in (v or "").split(",") if x.strip()}


def _bearer_token(request: Request) -> str:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="missing_bearer_token")
    return token.strip()


def _check_allow_lists(claims: Dict[str, Any]) -> None:
    subs = _csv_set(settings.OPERATOR_INVOKER_SUBS)
    emails = _csv_set(settings.OPERATOR_INVOKER_EMAILS)
    if subs and claims.get("sub", "") not in subs:
        raise HTTPException(status_code=403, detail="operator_sub_not_allowed")
    email = claims.get("email", "")
    if emails and email and email not in emails:
        raise HTTPException(status_code=403, detail="operator_email_not_allowed")


def verify_operator_request(request: Request) -> dict:
    """
    Admin access: a Google-signed OIDC ID token for OPERATOR_AUTH_AUDIENCE,
    optionally limited to allow-listed subjects and emails. Returns the claims.
    """
    token = _bearer_token(request)
    if not settings.OPERATOR_AUTH_AUDIENCE:
        # fail closed
        raise HTTPException(status_code=500, detail="operator_auth_audience_not_configured")
    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(),
                                              audience=settings.OPERATOR_AUTH_AUDIENCE)
    except Exception as e:
        log.warning("operator_auth_verify_failed",
                    extra={"extra": {"event": "operator_auth_verify_failed", "path": request.url.path,
                                     "error": str(e)}})
        raise HTTPException(status_code=401, detail="invalid_operator_token")
    _check_allow_lists(claims)
    return claims


def require_operator_auth(request: Request) -> dict:
    return verify_operator_request(request)


def operator_identity(claims: Dict[str, Any]) -> str:
    """Audit-log actor for a verified operator."""
    return str(claims.get("email") or claims.get("sub") or "operator")


OperatorClaims = Depends(require_operator_auth)
