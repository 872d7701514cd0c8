"""
Data router.

Endpoints describing the raw exports available on disk.
"""

from typing import List

from fastapi import APIRouter, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from stationdash.ingest.files import DatasetKind, list_months

router = APIRouter(
    prefix="/data",
    tags=["data"],
)

limiter = Limiter(key_func=get_remote_address)


@router.get("/months", response_model=List[str])
@limiter.limit("60/minute")
async def get_months(
    request: Request,
    kind: DatasetKind = Query(DatasetKind.MAIN, description="Dataset kind"),
):
    """
    List YYYYMM months that have a raw export of the given kind.

    Rate limit: 60 requests per minute
    """
    return list_months(kind)
