"""GET /v1/suppliers/{supplier_id}/requests - requests a supplier may bid on"""

from typing import List

from fastapi import APIRouter, Depends, Query

from installment_engine.api.dependencies import get_engine
from installment_engine.api.v1.schemas import RequestResponse
from installment_engine.services.engine import InstallmentEngine

router = APIRouter()


@router.get("/suppliers/{supplier_id}/requests", response_model=List[RequestResponse])
def list_supplier_requests(
    supplier_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: InstallmentEngine = Depends(get_engine),
):
    """
    List open requests forwarded to this supplier.

    Requests forwarded without a supplier list are visible to every supplier.
    """
    return [RequestResponse.model_validate(r) for r in engine.list_requests_for_supplier(supplier_id, limit, offset)]
