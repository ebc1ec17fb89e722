"""
Admin/Operator API

Outbox status and manual handling of escalated faults.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from ....core.faults import FaultSink, FaultState
from ....core.outbox import outbox_counts
from ...shared.exceptions import NotFoundError
from ...shared.middleware import require_user

router = APIRouter(prefix="/api/admin", tags=["admin"])


class PurgeRequest(BaseModel):
    """Request to purge fault records."""
    days: int = 30


def get_fault_sink(request: Request) -> FaultSink:
    return request.app.state.fault_sink


# Fault Management Endpoints

@router.get("/faults")
async def list_faults(
    state: Optional[FaultState] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    sink: FaultSink = Depends(get_fault_sink),
):
    """List fault records, newest first."""
    faults = await sink.list(state=state, limit=limit, offset=offset)
    total = await sink.count(state)

    return {
        "faults": [f.to_dict() for f in faults],
        "total": total,
        "limit": limit,
        "offset": offset
    }


@router.get("/faults/stats")
async def fault_stats(sink: FaultSink = Depends(get_fault_sink)):
    return await sink.get_stats()


@router.get("/faults/{fault_id}")
async def get_fault(fault_id: str, sink: FaultSink = Depends(get_fault_sink)):
    fault = await sink.get(fault_id)
    if fault is None:
        raise NotFoundError("Fault", fault_id)
    return fault.to_dict()


@router.post("/faults/{fault_id}/retry")
async def retry_fault(
    request: Request,
    fault_id: str,
    operator: str = Depends(require_user),
    sink: FaultSink = Depends(get_fault_sink),
):
    """Republish an escalated fault's original message through the outbox."""
    record = await sink.retry(fault_id, operator=operator)
    if record is None:
        raise NotFoundError("Fault", fault_id)

    relay = getattr(request.app.state, "relay", None)
    if relay is not None:
        relay.notify()

    return {"status": "republished", "fault_id": fault_id, "outbox_id": record.id}


@router.post("/faults/purge-old")
async def purge_old_faults(
    body: PurgeRequest,
    operator: str = Depends(require_user),
    sink: FaultSink = Depends(get_fault_sink),
):
    """Purge fault records older than the given number of days."""
    count = await sink.purge_old(days=body.days, operator=operator)
    return {"status": "purged", "older_than_days": body.days, "count": count}


# Outbox Status Endpoints

@router.get("/outbox/stats")
async def outbox_stats(request: Request):
    """Outbox counts, plus relay counters when this instance runs the relay."""
    relay = getattr(request.app.state, "relay", None)
    if relay is not None:
        return await relay.get_stats()
    return await outbox_counts(request.app.state.db)
