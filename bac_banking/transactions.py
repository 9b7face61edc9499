"""
Transaction Processing Module

Deposits, withdrawals and internal transfers. Each successful operation
persists the new balances and one immutable Transaction per mutated
account, then records a _SUCCESS audit entry. Errors are caught at this
boundary and returned as failure results: malformed input is reported
without an audit entry, every other failure is audited as _FAILED.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from .accounts import Account, AccountManager
from .audit import AuditLedger
from .currency import AmountLike, ZERO, to_decimal
from .errors import BankingError, ErrorKind, InvalidArgumentError, NotFoundError
from .ids import IDGenerator
from .logging_config import get_logger, log_action
from .storage import StorageInterface


class TransactionType(Enum):
    """Types of ledger records"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER_INTERNAL = "transfer_internal"
    TRANSFER_EXTERNAL = "transfer_external"
    INTEREST_PAYMENT = "interest_payment"


@dataclass(frozen=True)
class Transaction:
    """
    Immutable ledger record of one balance change on one account
    """
    transaction_id: str
    transaction_type: TransactionType
    amount: Decimal
    timestamp: datetime
    description: str
    account_number: str

    def __post_init__(self):
        if self.amount <= ZERO:
            raise InvalidArgumentError("Transaction amount must be positive")
        if not self.account_number:
            raise InvalidArgumentError("Transaction must reference an account")


@dataclass
class TransactionResult:
    """Outcome of a deposit or withdrawal"""
    success: bool
    message: str
    new_balance: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


@dataclass
class TransferResult:
    """Outcome of a transfer between two accounts"""
    success: bool
    message: str
    source_balance: Optional[Decimal] = None
    target_balance: Optional[Decimal] = None
    transaction_ids: List[str] = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None


AccountRef = Union[Account, str]


class TransactionProcessor:
    """
    Applies account operations and records their ledger and audit entries
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        audit_ledger: AuditLedger,
        id_generator: IDGenerator
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.audit_ledger = audit_ledger
        self.id_generator = id_generator
        self.table_name = "transactions"
        self.logger = get_logger("bac.transactions")

    def process_deposit(self, account_number: str, amount: AmountLike, actor_id: str) -> TransactionResult:
        """
        Deposit into an account

        Args:
            account_number: Account to credit
            amount: Positive amount
            actor_id: User performing the deposit

        Returns:
            TransactionResult with the new balance and transaction id
        """
        try:
            value = self._validate_request(account_number, amount)
        except InvalidArgumentError:
            return TransactionResult(False, "Invalid input parameters", error_kind=ErrorKind.INVALID_ARGUMENT)

        try:
            with self.account_manager.locks.lock(account_number):
                account = self.account_manager.get_account(account_number)
                if account is None:
                    raise NotFoundError("Account", account_number)

                with self.storage.atomic():
                    new_balance = account.deposit(value)
                    self.account_manager.update_balance(account_number, new_balance)
                    transaction = self.record_transaction(
                        TransactionType.DEPOSIT, value, f"Deposit to account {account_number}", account
                    )
        except InvalidArgumentError as e:
            return TransactionResult(False, e.message, error_kind=e.kind)
        except NotFoundError as e:
            self._record_failure(actor_id, "DEPOSIT_FAILED", "Account not found", account_number)
            return TransactionResult(False, "Account not found", error_kind=e.kind)
        except BankingError as e:
            self._record_failure(actor_id, "DEPOSIT_FAILED", e.message, account_number)
            return TransactionResult(False, e.message, error_kind=e.kind)
        except Exception as e:
            self.logger.exception(f"Deposit to {account_number} failed")
            message = f"Deposit failed: {e}"
            self._record_failure(actor_id, "DEPOSIT_FAILED", message, account_number)
            return TransactionResult(False, message, error_kind=ErrorKind.UNEXPECTED)

        self.audit_ledger.record_audit(
            actor_id, "DEPOSIT_SUCCESS",
            f"Deposited {value:.2f} to account {account_number}. New balance: {new_balance:.2f}"
        )
        log_action(
            self.logger, "info", f"Deposit of {value:.2f} completed",
            user_id=actor_id, action="DEPOSIT", resource=account_number
        )
        return TransactionResult(
            True, "Deposit successful",
            new_balance=new_balance,
            transaction_id=transaction.transaction_id
        )

    def process_withdrawal(self, account: AccountRef, amount: AmountLike, actor_id: str) -> TransactionResult:
        """
        Withdraw from an account under its own withdrawal rule

        Args:
            account: Account object or account number; an object passed in
                is refreshed from storage and updated in place
            amount: Positive amount
            actor_id: User performing the withdrawal

        Returns:
            TransactionResult with the new balance and transaction id
        """
        account_number = self._account_number(account)
        try:
            value = self._validate_request(account_number, amount)
        except InvalidArgumentError:
            return TransactionResult(False, "Invalid input parameters", error_kind=ErrorKind.INVALID_ARGUMENT)

        try:
            with self.account_manager.locks.lock(account_number):
                target = self._load_for_update(account)
                balance_before = target.balance
                try:
                    with self.storage.atomic():
                        new_balance = target.withdraw(value)
                        self.account_manager.update_balance(account_number, new_balance)
                        transaction = self.record_transaction(
                            TransactionType.WITHDRAWAL, value,
                            f"Withdrawal from account {account_number}", target
                        )
                except Exception:
                    target.balance = balance_before
                    raise
        except InvalidArgumentError as e:
            return TransactionResult(False, e.message, error_kind=e.kind)
        except BankingError as e:
            self._record_failure(actor_id, "WITHDRAWAL_FAILED", e.message, account_number)
            return TransactionResult(False, e.message, error_kind=e.kind)
        except Exception as e:
            self.logger.exception(f"Withdrawal from {account_number} failed")
            message = f"Withdrawal failed: {e}"
            self._record_failure(actor_id, "WITHDRAWAL_FAILED", message, account_number)
            return TransactionResult(False, message, error_kind=ErrorKind.UNEXPECTED)

        self.audit_ledger.record_audit(
            actor_id, "WITHDRAWAL_SUCCESS",
            f"Withdrew {value:.2f} from account {account_number}. New balance: {new_balance:.2f}"
        )
        log_action(
            self.logger, "info", f"Withdrawal of {value:.2f} completed",
            user_id=actor_id, action="WITHDRAWAL", resource=account_number
        )
        return TransactionResult(
            True, "Withdrawal successful",
            new_balance=new_balance,
            transaction_id=transaction.transaction_id
        )

    def transfer_funds(
        self,
        from_account: AccountRef,
        to_account: AccountRef,
        amount: AmountLike,
        actor_id: str
    ) -> TransferResult:
        """
        Transfer between two internal accounts

        Both balance updates and both ledger records are written in one
        storage transaction; on failure the in-memory balances are restored.

        Returns:
            TransferResult with both balances and both transaction ids
        """
        source_number = self._account_number(from_account)
        target_number = self._account_number(to_account)
        try:
            value = self._validate_request(source_number, amount)
            if not target_number or not str(target_number).strip():
                raise InvalidArgumentError("Target account is required")
            if source_number == target_number:
                raise InvalidArgumentError("Cannot transfer to the same account")
        except InvalidArgumentError as e:
            return TransferResult(False, e.message, error_kind=ErrorKind.INVALID_ARGUMENT)

        try:
            with self.account_manager.locks.lock(source_number, target_number):
                source = self._load_for_update(from_account)
                target = self._load_for_update(to_account)
                source_before, target_before = source.balance, target.balance
                try:
                    with self.storage.atomic():
                        source.transfer_to(target, value)
                        self.account_manager.update_balance(source_number, source.balance)
                        self.account_manager.update_balance(target_number, target.balance)
                        outgoing = self.record_transaction(
                            TransactionType.TRANSFER_INTERNAL, value,
                            f"Transfer to account {target_number}", source
                        )
                        incoming = self.record_transaction(
                            TransactionType.TRANSFER_INTERNAL, value,
                            f"Transfer from account {source_number}", target
                        )
                except Exception:
                    source.balance = source_before
                    target.balance = target_before
                    raise
        except InvalidArgumentError as e:
            return TransferResult(False, e.message, error_kind=e.kind)
        except BankingError as e:
            self._record_failure(actor_id, "TRANSFER_FAILED", e.message, source_number)
            return TransferResult(False, e.message, error_kind=e.kind)
        except Exception as e:
            self.logger.exception(f"Transfer from {source_number} to {target_number} failed")
            message = f"Transfer failed: {e}"
            self._record_failure(actor_id, "TRANSFER_FAILED", message, source_number)
            return TransferResult(False, message, error_kind=ErrorKind.UNEXPECTED)

        self.audit_ledger.record_audit(
            actor_id, "TRANSFER_SUCCESS",
            f"Transferred {value:.2f} from account {source_number} to account {target_number}"
        )
        log_action(
            self.logger, "info", f"Transfer of {value:.2f} completed",
            user_id=actor_id, action="TRANSFER", resource=source_number,
            extra={"target_account": target_number}
        )
        return TransferResult(
            True, "Transfer successful",
            source_balance=source.balance,
            target_balance=target.balance,
            transaction_ids=[outgoing.transaction_id, incoming.transaction_id]
        )

    def record_transaction(
        self,
        transaction_type: TransactionType,
        amount: AmountLike,
        description: str,
        account: AccountRef
    ) -> Transaction:
        """Create and persist one ledger record"""
        transaction = Transaction(
            transaction_id=self.id_generator.generate_transaction_id(),
            transaction_type=transaction_type,
            amount=to_decimal(amount),
            timestamp=datetime.now(timezone.utc),
            description=description,
            account_number=self._account_number(account)
        )
        self._save_transaction(transaction)
        return transaction

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID"""
        transaction_dict = self.storage.load(self.table_name, transaction_id)
        if transaction_dict:
            return self._transaction_from_dict(transaction_dict)
        return None

    def get_account_transactions(
        self,
        account_number: str,
        transaction_types: Optional[List[TransactionType]] = None
    ) -> List[Transaction]:
        """
        Get an account's ledger records, oldest first

        Args:
            account_number: Account number
            transaction_types: Optional transaction type filter

        Returns:
            List of Transaction objects
        """
        transactions = [
            self._transaction_from_dict(data)
            for data in self.storage.find(self.table_name, {"account_number": account_number})
        ]

        if transaction_types:
            transactions = [t for t in transactions if t.transaction_type in transaction_types]

        transactions.sort(key=lambda t: t.timestamp)
        return transactions

    def _validate_request(self, account_number: Optional[str], amount: AmountLike) -> Decimal:
        if not account_number or not str(account_number).strip():
            raise InvalidArgumentError("Account number is required")
        value = to_decimal(amount)
        if value <= ZERO:
            raise InvalidArgumentError("Amount must be positive")
        return value

    def _account_number(self, account: Optional[AccountRef]) -> Optional[str]:
        if isinstance(account, Account):
            return account.account_number
        return account

    def _load_for_update(self, account: AccountRef) -> Account:
        """Current stored state of an account, copied onto a passed-in object"""
        account_number = self._account_number(account)
        stored = self.account_manager.get_account(account_number)
        if stored is None:
            raise NotFoundError("Account", account_number)

        if isinstance(account, Account):
            account.balance = stored.balance
            account.status = stored.status
            return account
        return stored

    def _record_failure(self, actor_id: str, action: str, message: str, account_number: str) -> None:
        try:
            self.audit_ledger.record_audit(actor_id, action, f"{message} (account {account_number})")
        except Exception:
            self.logger.exception(f"Could not record {action} audit for {account_number}")

    def _save_transaction(self, transaction: Transaction) -> None:
        """Save transaction to storage"""
        self.storage.save(self.table_name, transaction.transaction_id, self._transaction_to_dict(transaction))

    def _transaction_to_dict(self, transaction: Transaction) -> Dict:
        """Convert Transaction to dictionary for storage"""
        return {
            'transaction_id': transaction.transaction_id,
            'transaction_type': transaction.transaction_type.value,
            'amount': str(transaction.amount),
            'timestamp': transaction.timestamp.isoformat(),
            'description': transaction.description,
            'account_number': transaction.account_number
        }

    def _transaction_from_dict(self, data: Dict) -> Transaction:
        """Convert dictionary to Transaction"""
        return Transaction(
            transaction_id=data['transaction_id'],
            transaction_type=TransactionType(data['transaction_type']),
            amount=Decimal(data['amount']),
            timestamp=datetime.fromisoformat(data['timestamp']),
            description=data['description'],
            account_number=data['account_number']
        )
