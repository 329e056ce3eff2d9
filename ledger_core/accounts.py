"""
Account Store Module

Keyed storage of account records (currency, balance, timestamps). The
only balance mutation is ``adjust_balance``, a single conditional update
so that a debit can never take a balance below its floor.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import List, Optional
import uuid

from .errors import (
    InsufficientFundsError, InvalidOperationError, NotFoundError, ValidationError
)
from .money import MAX_MINOR_UNITS, MAXIMUM_AMOUNT, Money
from .storage import StorageInterface, StorageRecord
from .logging_config import get_logger


def normalize_currency(currency: str) -> str:
    """Strip and upper-case a currency code, rejecting empty codes"""
    if not isinstance(currency, str) or not currency.strip():
        raise ValidationError("Currency is required")
    return currency.strip().upper()


@dataclass
class Account(StorageRecord):
    """
    Ledger account holding a non-negative balance in minor units
    """
    currency: str
    balance: int
    updated_at: datetime

    def __post_init__(self):
        if isinstance(self.balance, bool) or not isinstance(self.balance, int):
            raise ValueError("Account balance must be an integer number of minor units")
        if self.balance < 0:
            raise ValueError("Account balance cannot be negative")

    @property
    def balance_money(self) -> Money:
        return Money(self.balance)


class AccountStore:
    """
    Durable account records with an atomic balance adjustment primitive
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "accounts"
        self.logger = get_logger("ledger.accounts")

    def get(self, account_id: str) -> Optional[Account]:
        """Get account by ID, or None if it does not exist"""
        data = self.storage.load(self.table_name, account_id)
        if data:
            return Account.from_dict(data)
        return None

    def create(self, currency: str) -> Account:
        """
        Create a new account with a zero balance

        Args:
            currency: Currency code (stored upper-cased)

        Returns:
            Created Account
        """
        now = datetime.now(timezone.utc)
        account = Account(
            id=str(uuid.uuid4()),
            created_at=now,
            currency=normalize_currency(currency),
            balance=0,
            updated_at=now,
        )
        self.storage.save(self.table_name, account.id, account.to_dict())
        return account

    def list(self) -> List[Account]:
        """All accounts in creation order"""
        return [Account.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def adjust_balance(
        self,
        account_id: str,
        delta: int,
        min_resulting_balance: Optional[int] = None
    ) -> Account:
        """
        Add delta (minor units, may be negative) to an account balance

        The bound checks and the write happen as one conditional update, so
        concurrent debits cannot both pass a stale check. Balances never
        exceed MAX_MINOR_UNITS.

        Args:
            account_id: Account to adjust
            delta: Signed change in minor units
            min_resulting_balance: Reject the change if the new balance would
                fall below this value

        Returns:
            Updated Account

        Raises:
            NotFoundError: If the account does not exist
            InsufficientFundsError: If the floor would be violated
            InvalidOperationError: If the balance would exceed the maximum
        """
        data = self.storage.increment(
            self.table_name,
            account_id,
            "balance",
            delta,
            floor=min_resulting_balance,
            ceiling=MAX_MINOR_UNITS,
            updated_at=datetime.now(timezone.utc),
        )
        if data is None:
            if self.storage.load(self.table_name, account_id) is None:
                raise NotFoundError(f"Account with ID {account_id} not found")
            if delta > 0:
                raise InvalidOperationError(
                    f"Resulting balance would exceed the maximum of {MAXIMUM_AMOUNT}"
                )
            self.logger.debug(
                "Balance floor %s rejected delta %s on account %s",
                min_resulting_balance, delta, account_id
            )
            raise InsufficientFundsError("Insufficient balance")
        return Account.from_dict(data)
