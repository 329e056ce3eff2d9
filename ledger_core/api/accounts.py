"""
Account endpoints
"""

from typing import List
from fastapi import APIRouter, Depends, status

from .deps import get_engine, get_settings
from .schemas import (
    AccountDetailModel, AccountModel, BalanceModel, CreateAccountRequest,
    ErrorModel, HistoryEntryModel
)
from ..config import LedgerConfig
from ..ledger import LedgerEngine


router = APIRouter()

NOT_FOUND = {404: {"model": ErrorModel, "description": "Account not found"}}


@router.post("", status_code=status.HTTP_201_CREATED, response_model=AccountModel)
def create_account(
    request: CreateAccountRequest,
    engine: LedgerEngine = Depends(get_engine)
):
    """Create a new account with a zero balance"""
    return AccountModel.from_account(engine.create_account(request.currency))


@router.get("", response_model=List[AccountDetailModel])
def list_accounts(engine: LedgerEngine = Depends(get_engine)):
    """List all accounts with their sent and received transactions"""
    return [AccountDetailModel.from_details(details) for details in engine.list_account_details()]


@router.get("/{account_id}", response_model=AccountDetailModel, responses=NOT_FOUND)
def get_account(account_id: str, engine: LedgerEngine = Depends(get_engine)):
    """Get account details with sent and received transactions"""
    return AccountDetailModel.from_details(engine.get_account_details(account_id))


@router.get("/{account_id}/balance", response_model=BalanceModel, responses=NOT_FOUND)
def get_balance(account_id: str, engine: LedgerEngine = Depends(get_engine)):
    """Get account balance in major units"""
    return BalanceModel.from_view(engine.get_balance(account_id))


@router.get(
    "/{account_id}/transactions",
    response_model=List[HistoryEntryModel],
    responses=NOT_FOUND
)
def get_transaction_history(
    account_id: str,
    engine: LedgerEngine = Depends(get_engine),
    settings: LedgerConfig = Depends(get_settings)
):
    """Get account transaction history, newest first"""
    entries = engine.get_history_entries(account_id, limit=settings.max_history_size)
    return [HistoryEntryModel.from_entry(entry) for entry in entries]
