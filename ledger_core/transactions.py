"""
Transaction Log Module

Append-only record of completed balance-changing operations. Entries are
written once inside the same unit of work as the balance change they
describe and are never updated or deleted.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum
import uuid

from .money import Money
from .storage import StorageInterface, StorageRecord


class TransactionType(Enum):
    """Types of ledger transactions"""
    DEPOSIT = "DEPOSIT"    # External funds credited to one account
    TRANSFER = "TRANSFER"  # Funds moved between two accounts


class TransactionStatus(Enum):
    """States of a transaction"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"  # The only state the engine writes
    FAILED = "FAILED"


@dataclass
class Transaction(StorageRecord):
    """
    Immutable record of one deposit or transfer
    """
    amount: int  # Minor units
    type: TransactionType
    status: TransactionStatus
    sender_id: Optional[str]
    receiver_id: str
    description: str

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise ValueError("Transaction amount must be a positive number of minor units")

        if not self.receiver_id:
            raise ValueError("Transaction must have a receiver account")

        if self.type == TransactionType.TRANSFER:
            if not self.sender_id:
                raise ValueError("Transfer must have a sender account")
            if self.sender_id == self.receiver_id:
                raise ValueError("Transfer sender and receiver must differ")
        elif self.sender_id is not None:
            raise ValueError("Deposit cannot have a sender account")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        data = dict(data)
        data['type'] = TransactionType(data['type'])
        data['status'] = TransactionStatus(data['status'])
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        return cls(**data)

    @classmethod
    def completed(
        cls,
        transaction_type: TransactionType,
        amount: Money,
        receiver_id: str,
        description: str,
        sender_id: Optional[str] = None
    ) -> 'Transaction':
        """Build a COMPLETED entry with a fresh id and timestamp"""
        return cls(
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
            amount=amount.minor_units,
            type=transaction_type,
            status=TransactionStatus.COMPLETED,
            sender_id=sender_id,
            receiver_id=receiver_id,
            description=description,
        )


class TransactionLog:
    """
    Durable append-only transaction history, queryable by account
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "transactions"

    def append(self, transaction: Transaction) -> Transaction:
        """
        Record a transaction

        Raises:
            ValueError: If a transaction with the same ID is already recorded
        """
        with self.storage.atomic():
            if self.get(transaction.id) is not None:
                raise ValueError(f"Transaction {transaction.id} is already recorded")
            self.storage.save(self.table_name, transaction.id, transaction.to_dict())
        return transaction

    def get(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.table_name, transaction_id)
        if data:
            return Transaction.from_dict(data)
        return None

    def list(self) -> List[Transaction]:
        """Every recorded transaction, newest first"""
        return _newest_first(self.storage.load_all(self.table_name))

    def find_by_account(self, account_id: str) -> List[Transaction]:
        """All transactions sending from or to the account, newest first"""
        records = self.storage.find(
            self.table_name,
            {"sender_id": account_id, "receiver_id": account_id},
            match_any=True,
        )
        return _newest_first(records)

    def count(self) -> int:
        return self.storage.count(self.table_name)


def _newest_first(records: List[Dict[str, Any]]) -> List[Transaction]:
    transactions = [Transaction.from_dict(data) for data in records]

    # Stable ascending sort keeps insertion order for equal timestamps;
    # reversing then puts the latest write first.
    transactions.sort(key=lambda txn: txn.created_at)
    transactions.reverse()
    return transactions
