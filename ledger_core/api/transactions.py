"""
Transaction endpoints
"""

from fastapi import APIRouter, Depends

from .deps import get_engine
from .schemas import (
    DepositRequest, DepositResponse, ErrorModel, TransferRequest, TransferResponse
)
from ..ledger import LedgerEngine


router = APIRouter()

ERRORS = {
    400: {"model": ErrorModel, "description": "Insufficient funds or invalid operation"},
    404: {"model": ErrorModel, "description": "Account not found"},
    503: {"model": ErrorModel, "description": "Storage temporarily unavailable"},
}


@router.post("/deposit", response_model=DepositResponse, responses=ERRORS)
def deposit(request: DepositRequest, engine: LedgerEngine = Depends(get_engine)):
    """Make a deposit"""
    result = engine.deposit(request.account_id, request.amount)
    return DepositResponse.from_result(result)


@router.post("/transfer", response_model=TransferResponse, responses=ERRORS)
def transfer(request: TransferRequest, engine: LedgerEngine = Depends(get_engine)):
    """Make a transfer between accounts"""
    result = engine.transfer(request.sender_id, request.receiver_id, request.amount)
    return TransferResponse.from_result(result)
