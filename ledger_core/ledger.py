"""
Ledger Engine

Orchestrates account creation, deposits and transfers. Each balance
change and its transaction record are written inside one unit of work,
so either both persist or neither does. The engine keeps no mutable state
between calls and is safe to share across threads.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Dict, List, Optional

from .accounts import Account, AccountStore
from .errors import (
    InsufficientFundsError, InvalidOperationError, LedgerError,
    NotFoundError, UnavailableError, ValidationError
)
from .money import MajorAmount, parse_amount
from .storage import StorageInterface
from .transactions import Transaction, TransactionLog, TransactionType
from .logging_config import get_logger, log_action


@dataclass(frozen=True)
class DepositResult:
    account: Account
    transaction: Transaction


@dataclass(frozen=True)
class TransferResult:
    sender: Account
    receiver: Account
    transaction: Transaction


@dataclass(frozen=True)
class BalanceView:
    """Balance in major units"""
    id: str
    currency: str
    balance: Decimal


@dataclass(frozen=True)
class AccountRef:
    """Identity of a transaction party"""
    id: str
    currency: str


@dataclass(frozen=True)
class AccountDetails:
    """Account with the transactions it sent and received, newest first"""
    account: Account
    sent_transactions: List[Transaction]
    received_transactions: List[Transaction]


@dataclass(frozen=True)
class HistoryEntry:
    transaction: Transaction
    sender: Optional[AccountRef]
    receiver: AccountRef


class LedgerEngine:
    """
    Balance-mutation core: validates, enforces invariants and executes
    deposits and transfers atomically
    """

    def __init__(
        self,
        storage: StorageInterface,
        accounts: Optional[AccountStore] = None,
        transactions: Optional[TransactionLog] = None
    ):
        self.storage = storage
        self.accounts = accounts or AccountStore(storage)
        self.transactions = transactions or TransactionLog(storage)
        self.logger = get_logger("ledger.engine")

    def create_account(self, currency: str) -> Account:
        """
        Open a new account with a zero balance

        Raises:
            ValidationError: If currency is empty
        """
        try:
            account = self.accounts.create(currency)
        except ValidationError as e:
            self._log_rejection("create_account", None, e)
            raise

        log_action(
            self.logger, "info", "Account created",
            action="create_account", resource=f"account:{account.id}",
            extra={"currency": account.currency}
        )
        return account

    def get_account(self, account_id: str) -> Account:
        """Get the full account record"""
        return self._require_account(account_id)

    def list_accounts(self) -> List[Account]:
        return self.accounts.list()

    def get_account_details(self, account_id: str) -> AccountDetails:
        """Account record with its sent and received transactions"""
        account = self._require_account(account_id)
        history = self.transactions.find_by_account(account_id)
        return AccountDetails(
            account=account,
            sent_transactions=[txn for txn in history if txn.sender_id == account_id],
            received_transactions=[txn for txn in history if txn.receiver_id == account_id]
        )

    def list_account_details(self) -> List[AccountDetails]:
        """All accounts in creation order, each with its transactions"""
        sent: Dict[str, List[Transaction]] = {}
        received: Dict[str, List[Transaction]] = {}
        for txn in self.transactions.list():
            if txn.sender_id:
                sent.setdefault(txn.sender_id, []).append(txn)
            received.setdefault(txn.receiver_id, []).append(txn)

        return [
            AccountDetails(
                account=account,
                sent_transactions=sent.get(account.id, []),
                received_transactions=received.get(account.id, [])
            )
            for account in self.accounts.list()
        ]

    def deposit(self, account_id: str, amount: MajorAmount) -> DepositResult:
        """
        Credit an account with an external deposit

        Args:
            account_id: Account to credit
            amount: Positive amount in major units, at most two decimal places

        Returns:
            DepositResult with the updated account and the DEPOSIT transaction

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If the amount is malformed or out of range
            InvalidOperationError: If the balance would exceed the maximum
            UnavailableError: If the store cannot complete the unit of work
        """
        try:
            self._require_account(account_id)
            money = parse_amount(amount)

            with self.storage.atomic():
                account = self.accounts.adjust_balance(account_id, money.minor_units)
                transaction = self.transactions.append(Transaction.completed(
                    TransactionType.DEPOSIT,
                    money,
                    receiver_id=account_id,
                    description=f"Deposit of {money} to account",
                ))
        except LedgerError as e:
            self._log_rejection("deposit", account_id, e)
            raise

        log_action(
            self.logger, "info", "Deposit completed",
            action="deposit", resource=f"account:{account_id}",
            extra={
                "transaction_id": transaction.id,
                "amount": transaction.amount,
                "balance": account.balance
            }
        )
        return DepositResult(account=account, transaction=transaction)

    def transfer(self, sender_id: str, receiver_id: str, amount: MajorAmount) -> TransferResult:
        """
        Move funds between two accounts

        Checks run in order and stop at the first failure: self-transfer,
        sender lookup, receiver lookup, currency match, amount conversion,
        balance pre-check. The debit itself is a conditional decrement, so
        a concurrent transfer that drained the sender after the pre-check
        makes this one fail with InsufficientFundsError and roll back.

        Returns:
            TransferResult with both updated accounts and the TRANSFER transaction

        Raises:
            InvalidOperationError: Self-transfer, currency mismatch or a receiver
                balance that would exceed the maximum
            NotFoundError: If either account does not exist
            InsufficientFundsError: If the sender cannot cover the amount
            ValidationError: If the amount is malformed
            UnavailableError: If the store cannot complete the unit of work
        """
        try:
            self._require_id(sender_id, "Sender account")
            self._require_id(receiver_id, "Receiver account")

            if sender_id == receiver_id:
                raise InvalidOperationError("Cannot transfer to the same account")

            sender = self._require_account(sender_id, "Sender account")
            receiver = self._require_account(receiver_id, "Receiver account")

            if sender.currency != receiver.currency:
                raise InvalidOperationError(
                    f"Cannot transfer between {sender.currency} and {receiver.currency} accounts"
                )

            money = parse_amount(amount)

            if sender.balance < money.minor_units:
                raise InsufficientFundsError("Insufficient balance")

            with self.storage.atomic():
                updated_sender = self.accounts.adjust_balance(
                    sender_id, -money.minor_units, min_resulting_balance=0
                )
                updated_receiver = self.accounts.adjust_balance(receiver_id, money.minor_units)
                transaction = self.transactions.append(Transaction.completed(
                    TransactionType.TRANSFER,
                    money,
                    sender_id=sender_id,
                    receiver_id=receiver_id,
                    description=f"Transfer of {money} from {sender_id} to {receiver_id}",
                ))
        except LedgerError as e:
            self._log_rejection("transfer", sender_id, e, extra={"receiver_id": receiver_id})
            raise

        log_action(
            self.logger, "info", "Transfer completed",
            action="transfer", resource=f"account:{sender_id}",
            extra={
                "transaction_id": transaction.id,
                "receiver_id": receiver_id,
                "amount": transaction.amount
            }
        )
        return TransferResult(
            sender=updated_sender,
            receiver=updated_receiver,
            transaction=transaction
        )

    def get_balance(self, account_id: str) -> BalanceView:
        """Current balance in major units"""
        account = self._require_account(account_id)
        return BalanceView(
            id=account.id,
            currency=account.currency,
            balance=account.balance_money.to_major()
        )

    def get_transaction_history(self, account_id: str) -> List[Transaction]:
        """Transactions where the account is sender or receiver, newest first"""
        self._require_account(account_id)
        return self.transactions.find_by_account(account_id)

    def get_history_entries(self, account_id: str,
                            limit: Optional[int] = None) -> List[HistoryEntry]:
        """
        Transaction history with the id and currency of each party

        Args:
            account_id: Account whose history to return
            limit: Keep only the newest ``limit`` entries (all if None)
        """
        history = self.get_transaction_history(account_id)
        if limit is not None:
            history = history[:max(limit, 0)]

        parties: Dict[str, AccountRef] = {}

        def party(party_id: str) -> AccountRef:
            if party_id not in parties:
                account = self._require_account(party_id)
                parties[party_id] = AccountRef(id=account.id, currency=account.currency)
            return parties[party_id]

        return [
            HistoryEntry(
                transaction=txn,
                sender=party(txn.sender_id) if txn.sender_id else None,
                receiver=party(txn.receiver_id)
            )
            for txn in history
        ]

    def _require_id(self, account_id: str, label: str) -> None:
        if not isinstance(account_id, str) or not account_id.strip():
            raise ValidationError(f"{label} ID is required")

    def _require_account(self, account_id: str, label: str = "Account") -> Account:
        self._require_id(account_id, label)
        account = self.accounts.get(account_id)
        if account is None:
            raise NotFoundError(f"{label} with ID {account_id} not found")
        return account

    def _log_rejection(self, action: str, account_id: Optional[str], error: LedgerError,
                       extra: Optional[dict] = None) -> None:
        level = "error" if isinstance(error, UnavailableError) else "warning"
        details = {"error": error.kind.value}
        if extra:
            details.update(extra)
        log_action(
            self.logger, level, f"{action} rejected: {error.message}",
            action=action,
            resource=f"account:{account_id}" if account_id else None,
            extra=details
        )
