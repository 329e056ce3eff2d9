"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from ..accounts import Account
from ..ledger import (
    AccountDetails, AccountRef, BalanceView, DepositResult, HistoryEntry, TransferResult
)
from ..money import MAXIMUM_AMOUNT, MINIMUM_AMOUNT
from ..transactions import Transaction


def amount_field():
    """Amount in major units; the engine converts it to minor units"""
    return Field(
        ...,
        ge=MINIMUM_AMOUNT,
        le=MAXIMUM_AMOUNT,
        decimal_places=2,
        description="Amount in major units, at most two decimal places"
    )


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


# Request schemas
class CreateAccountRequest(BaseModel):
    currency: str = Field(..., description="Currency code (USD, EUR, etc.)")

    @field_validator("currency")
    @classmethod
    def currency_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class DepositRequest(BaseModel):
    account_id: str
    amount: Decimal = amount_field()

    @field_validator("account_id")
    @classmethod
    def id_not_blank(cls, value: str) -> str:
        return _not_blank(value)


class TransferRequest(BaseModel):
    sender_id: str
    receiver_id: str
    amount: Decimal = amount_field()

    @field_validator("sender_id", "receiver_id")
    @classmethod
    def ids_not_blank(cls, value: str) -> str:
        return _not_blank(value)


# Response schemas
class AccountModel(BaseModel):
    id: str
    currency: str
    balance: int = Field(..., description="Balance in minor units")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> 'AccountModel':
        return cls(
            id=account.id,
            currency=account.currency,
            balance=account.balance,
            created_at=account.created_at,
            updated_at=account.updated_at
        )


class TransactionModel(BaseModel):
    id: str
    amount: int = Field(..., description="Amount in minor units")
    type: str
    status: str
    sender_id: Optional[str] = None
    receiver_id: str
    description: str
    created_at: datetime

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionModel':
        return cls(
            id=transaction.id,
            amount=transaction.amount,
            type=transaction.type.value,
            status=transaction.status.value,
            sender_id=transaction.sender_id,
            receiver_id=transaction.receiver_id,
            description=transaction.description,
            created_at=transaction.created_at
        )


class AccountRefModel(BaseModel):
    id: str
    currency: str

    @classmethod
    def from_ref(cls, ref: AccountRef) -> 'AccountRefModel':
        return cls(id=ref.id, currency=ref.currency)


class HistoryEntryModel(TransactionModel):
    """History entry with the id and currency of both parties"""
    sender: Optional[AccountRefModel] = None
    receiver: AccountRefModel

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> 'HistoryEntryModel':
        base = TransactionModel.from_transaction(entry.transaction)
        return cls(
            **base.model_dump(),
            sender=AccountRefModel.from_ref(entry.sender) if entry.sender else None,
            receiver=AccountRefModel.from_ref(entry.receiver)
        )


class AccountDetailModel(AccountModel):
    """Account with its sent and received transactions, newest first"""
    sent_transactions: List[TransactionModel] = []
    received_transactions: List[TransactionModel] = []

    @classmethod
    def from_details(cls, details: AccountDetails) -> 'AccountDetailModel':
        base = AccountModel.from_account(details.account)
        return cls(
            **base.model_dump(),
            sent_transactions=transactions_to_models(details.sent_transactions),
            received_transactions=transactions_to_models(details.received_transactions)
        )


class BalanceModel(BaseModel):
    id: str
    currency: str
    balance: Decimal = Field(..., description="Balance in major units")

    @classmethod
    def from_view(cls, view: BalanceView) -> 'BalanceModel':
        return cls(id=view.id, currency=view.currency, balance=view.balance)


class DepositResponse(BaseModel):
    account: AccountModel
    transaction: TransactionModel

    @classmethod
    def from_result(cls, result: DepositResult) -> 'DepositResponse':
        return cls(
            account=AccountModel.from_account(result.account),
            transaction=TransactionModel.from_transaction(result.transaction)
        )


class TransferResponse(BaseModel):
    sender: AccountModel
    receiver: AccountModel
    transaction: TransactionModel

    @classmethod
    def from_result(cls, result: TransferResult) -> 'TransferResponse':
        return cls(
            sender=AccountModel.from_account(result.sender),
            receiver=AccountModel.from_account(result.receiver),
            transaction=TransactionModel.from_transaction(result.transaction)
        )


class ErrorModel(BaseModel):
    error: str
    detail: str


def transactions_to_models(transactions: List[Transaction]) -> List[TransactionModel]:
    return [TransactionModel.from_transaction(txn) for txn in transactions]
