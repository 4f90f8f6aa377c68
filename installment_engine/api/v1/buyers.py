"""GET /v1/buyers/{buyer_id}/credit-profile - buyer repayment behavior"""

from fastapi import APIRouter, Depends

from installment_engine.api.dependencies import get_engine
from installment_engine.api.v1.schemas import CreditProfileResponse
from installment_engine.services.engine import InstallmentEngine

router = APIRouter()


@router.get("/buyers/{buyer_id}/credit-profile", response_model=CreditProfileResponse)
def get_credit_profile(buyer_id: str, engine: InstallmentEngine = Depends(get_engine)):
    """
    Retrieve the buyer's credit profile.

    Buyers who never held a contract get a blank MEDIUM profile.
    """
    return CreditProfileResponse.model_validate(engine.get_credit_profile(buyer_id))
