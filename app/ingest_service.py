from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from app.errors import install_request_handling
from ingest.migration import MigrationJob, resolve_source_path
from ops.structured_logger import setup_logging
from repos.audit_log_repo import AuditLogRepository
from security.operator_auth import operator_identity, verify_operator_request
from utils.request_context import client_meta

setup_logging()

log = logging.getLogger("medprice.ingest.service")

app = FastAPI(title="MedPrice Ingest", version="1.0.0")
install_request_handling(app, log)


class MigrationRunRequest(BaseModel):
    source_path: Optional[str] = None


@app.get("/healthz")
def healthz():
    return {"ok": True, "service": "medprice-ingest"}


@app.post("/migration_run")
def migration_run(request: Request, body: Optional[MigrationRunRequest] = None):
    claims = verify_operator_request(request)
    try:
        source = resolve_source_path(body.source_path if body else None)
    except ValueError as e:
        log.warning(
            "migration_source_rejected",
            extra={"extra": {"event": "migration_source_rejected", "requested": body.source_path if body else None}},
        )
        raise HTTPException(status_code=400, detail=str(e))

    try:
        result = MigrationJob().run(source)
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        log.error(
            "migration_error",
            extra={"extra": {"event": "migration_error", "error_type": type(e).__name__, "message": str(e)}},
            exc_info=True,
        )
        raise

    AuditLogRepository().log_action(
        operator_identity(claims),
        "data_import",
        "migration",
        result["run_id"],
        changes={"stats": result},
        meta=client_meta(request),
        source="migration",
    )
    return {"ok": True, "result": result}
