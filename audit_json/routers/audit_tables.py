# audit_json/routers/audit_tables.py

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from audit_json.deps.db import get_manager
from audit_json.errors import PreconditionError
from audit_json.schemas.audit_entry import AttachRequest, TableAuditConfigRead, TableRef
from audit_json.services.attachment import AttachmentManager

logger = logging.getLogger("audit_json")

router = APIRouter(prefix="/audit/tables", tags=["audit"])


def _parse_table(table: str) -> TableRef:
    try:
        return TableRef.parse(table)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@router.get("", response_model=List[TableAuditConfigRead])
def list_attached(manager: AttachmentManager = Depends(get_manager)):
    return [TableAuditConfigRead.from_config(c) for c in manager.attached()]


@router.get("/{table}", response_model=TableAuditConfigRead)
def get_attached(table: str, manager: AttachmentManager = Depends(get_manager)):
    config = manager.get(_parse_table(table))
    if config is None:
        raise HTTPException(status_code=404, detail="Table not attached")
    return TableAuditConfigRead.from_config(config)


@router.put("/{table}", response_model=TableAuditConfigRead)
def attach_table(
    table: str,
    payload: Optional[AttachRequest] = None,
    manager: AttachmentManager = Depends(get_manager),
):
    payload = payload or AttachRequest()
    logger.info("PUT /audit/tables/%s called", table)
    try:
        config = manager.attach(
            _parse_table(table),
            capture_query_text=payload.capture_query_text,
            ignored_fields=payload.ignored_fields,
        )
    except PreconditionError as exc:
        raise HTTPException(status_code=412, detail=str(exc))
    return TableAuditConfigRead.from_config(config)


@router.delete("/{table}", status_code=204)
def detach_table(table: str, manager: AttachmentManager = Depends(get_manager)):
    logger.info("DELETE /audit/tables/%s called", table)
    manager.detach(_parse_table(table))
    return Response(status_code=204)
