"""
Account Management Module

Savings, Investment and Cheque accounts with their per-type deposit,
withdrawal, transfer and interest rules, plus the manager that persists
them. Every mutating operation goes through one shared validation routine
(positive amount, ACTIVE status) before the variant's own rules apply.
"""

import threading
from abc import ABC
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Dict, Iterator, List, Optional, Union, TYPE_CHECKING

from .audit import AuditLedger
from .config import BankConfig, get_config
from .currency import AmountLike, Currency, ZERO, has_valid_precision, round_money, to_decimal
from .errors import (
    BusinessRule,
    BusinessRuleViolation,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from .ids import IDGenerator
from .logging_config import get_logger, log_action
from .storage import StorageInterface

if TYPE_CHECKING:
    from .customers import Customer, CustomerManager


class AccountStatus(Enum):
    """Account lifecycle states"""
    ACTIVE = "active"        # Normal operation
    INACTIVE = "inactive"    # Dormant, no transactions
    CLOSED = "closed"        # Permanently closed, balance zero
    SUSPENDED = "suspended"  # Blocked pending review


class AccountKind(Enum):
    """Concrete account variants"""
    SAVINGS = "savings"
    INVESTMENT = "investment"
    CHEQUE = "cheque"


# Fields that cannot be reassigned once the account is built
_IMMUTABLE_FIELDS = frozenset({'account_number', 'date_created', 'date_opened'})


@dataclass(eq=False)
class Account:
    """
    Balance-bearing account owned by a customer

    The customer reference is kept only so account activity can be written
    to the owner's audit trail.
    """
    account_number: str
    balance: Decimal = ZERO
    status: AccountStatus = AccountStatus.ACTIVE
    date_created: date = field(default_factory=date.today)
    date_opened: date = field(default_factory=date.today)
    customer_id: Optional[str] = None
    customer: Optional['Customer'] = field(default=None, repr=False)
    currency: Currency = Currency.BWP

    kind: ClassVar[AccountKind]

    def __post_init__(self):
        if not self.account_number or not str(self.account_number).strip():
            raise InvalidArgumentError("Account number cannot be null or empty")

        self.balance = to_decimal(self.balance)
        if self.balance < ZERO:
            raise InvalidArgumentError("Balance cannot be negative")

        if self.customer is not None and not self.customer_id:
            self.customer_id = self.customer.customer_id

    def __setattr__(self, name, value):
        if name in _IMMUTABLE_FIELDS and name in self.__dict__:
            raise AttributeError(f"{name} cannot be changed after the account is created")
        super().__setattr__(name, value)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def _validate_mutation(self, amount: AmountLike) -> Decimal:
        """Shared checks for every balance change: positive amount, ACTIVE status"""
        value = to_decimal(amount)
        if value <= ZERO:
            raise InvalidArgumentError("Amount must be positive")
        if not has_valid_precision(value, self.currency):
            raise InvalidArgumentError(
                f"Amount {value} has more than {self.currency.precision} decimal places"
            )
        if self.status != AccountStatus.ACTIVE:
            raise InvalidStateError(
                f"Account {self.account_number} is not active (status: {self.status.value})"
            )
        return value

    def _check_debit(self, value: Decimal, as_of: Optional[date] = None) -> None:
        """Rules an outgoing amount must satisfy"""
        if self.balance < value:
            raise BusinessRuleViolation(
                BusinessRule.INSUFFICIENT_FUNDS,
                f"Insufficient funds in account {self.account_number}: "
                f"balance {self.balance:.2f}, requested {value:.2f}"
            )

    def _audit(self, action: str, details: str) -> None:
        if self.customer is not None:
            self.customer.record_audit(action, details)

    def deposit(self, amount: AmountLike) -> Decimal:
        """
        Credit the account

        Returns:
            New balance

        Raises:
            InvalidArgumentError: Amount is not positive
            InvalidStateError: Account is not ACTIVE
        """
        value = self._validate_mutation(amount)
        self.balance += value
        self._audit(
            "DEPOSIT",
            f"Deposited {value:.2f} to account {self.account_number}. New balance: {self.balance:.2f}"
        )
        return self.balance

    def withdraw(self, amount: AmountLike) -> Decimal:
        """
        Debit the account

        Returns:
            New balance

        Raises:
            InvalidArgumentError: Amount is not positive
            InvalidStateError: Account is not ACTIVE
            BusinessRuleViolation: Balance is lower than the amount
        """
        value = self._validate_mutation(amount)
        self._check_debit(value)
        self.balance -= value
        self._audit(
            "WITHDRAWAL",
            f"Withdrew {value:.2f} from account {self.account_number}. New balance: {self.balance:.2f}"
        )
        return self.balance

    def transfer_to(self, target: Optional['Account'], amount: AmountLike) -> Decimal:
        """
        Move funds to another account

        Both legs apply or neither does: if crediting the target fails the
        debit is reversed and the original error re-raised.

        Returns:
            New balance of this account
        """
        if target is None:
            raise InvalidArgumentError("Target account cannot be null")
        if target is self or target.account_number == self.account_number:
            raise InvalidArgumentError("Cannot transfer to the same account")

        value = self._validate_mutation(amount)
        self._check_debit(value)

        self.balance -= value
        try:
            target.deposit(value)
        except Exception:
            self.balance += value
            raise

        self._audit(
            "TRANSFER",
            f"Transferred {value:.2f} from account {self.account_number} to account "
            f"{target.account_number}. New balance: {self.balance:.2f}"
        )
        return self.balance

    def update_status(self, status: AccountStatus) -> None:
        """Change the lifecycle status; closing requires a zero balance"""
        if status == AccountStatus.CLOSED and self.balance != ZERO:
            raise InvalidStateError(
                f"Cannot close account {self.account_number} with balance {self.balance:.2f}"
            )
        old_status = self.status
        self.status = status
        self._audit(
            "STATUS_CHANGED",
            f"Account {self.account_number} status changed from {old_status.value} to {status.value}"
        )


class InterestBearing(ABC):
    """
    Capability for accounts that accrue simple daily interest

    Implementers provide interest_rate, interest_period_days and
    last_interest_applied alongside the Account fields.
    """

    def days_since_interest(self, as_of: Optional[date] = None) -> int:
        as_of = as_of or date.today()
        return (as_of - self.last_interest_applied).days

    def calculate_interest(self, as_of: Optional[date] = None) -> Decimal:
        """
        Interest earned since it was last applied

        Zero until the interest period has elapsed or when the account is
        not ACTIVE; otherwise balance x rate/365 x elapsed days.
        """
        if self.status != AccountStatus.ACTIVE:
            return ZERO

        elapsed = self.days_since_interest(as_of)
        if elapsed < self.interest_period_days:
            return ZERO

        return self.balance * (self.interest_rate / Decimal('365')) * Decimal(elapsed)

    def apply_interest(self, as_of: Optional[date] = None) -> Decimal:
        """
        Credit accrued interest to this account

        Returns:
            Amount credited, rounded to the currency's precision
        """
        interest = round_money(self.calculate_interest(as_of), self.currency)
        if interest <= ZERO:
            return ZERO

        self.balance += interest
        self.last_interest_applied = as_of or date.today()
        self._audit(
            "INTEREST_APPLIED",
            f"Interest of {interest:.2f} applied to account {self.account_number}. "
            f"New balance: {self.balance:.2f}"
        )
        return interest


@dataclass(eq=False)
class SavingsAccount(Account, InterestBearing):
    """Savings account: no withdrawals, transfers keep a minimum balance"""
    interest_rate: Decimal = Decimal('0.025')
    minimum_balance: Decimal = Decimal('500.00')
    interest_period_days: int = 30
    last_interest_applied: Optional[date] = None

    kind: ClassVar[AccountKind] = AccountKind.SAVINGS

    def __post_init__(self):
        super().__post_init__()
        self.interest_rate = to_decimal(self.interest_rate)
        self.minimum_balance = to_decimal(self.minimum_balance)
        if self.last_interest_applied is None:
            self.last_interest_applied = self.date_opened

    def withdraw(self, amount: AmountLike) -> Decimal:
        raise InvalidStateError("Savings account withdrawals not permitted")

    def _check_debit(self, value: Decimal, as_of: Optional[date] = None) -> None:
        available = self.balance - self.minimum_balance
        if value > available:
            raise BusinessRuleViolation(
                BusinessRule.MINIMUM_BALANCE,
                f"Transfer of {value:.2f} would take account {self.account_number} below its "
                f"minimum balance of {self.minimum_balance:.2f}"
            )


@dataclass(eq=False)
class InvestmentAccount(Account, InterestBearing):
    """Investment account: minimum opening deposit, floor and notice period"""
    interest_rate: Decimal = Decimal('0.065')
    minimum_balance: Decimal = Decimal('500.00')
    minimum_initial_deposit: Decimal = Decimal('500.00')
    interest_period_days: int = 90
    notice_period_days: int = 30
    last_interest_applied: Optional[date] = None

    kind: ClassVar[AccountKind] = AccountKind.INVESTMENT

    def __post_init__(self):
        super().__post_init__()
        self.interest_rate = to_decimal(self.interest_rate)
        self.minimum_balance = to_decimal(self.minimum_balance)
        self.minimum_initial_deposit = to_decimal(self.minimum_initial_deposit)
        if self.last_interest_applied is None:
            self.last_interest_applied = self.date_opened

    def validate_initial_deposit(self, amount: AmountLike) -> bool:
        """Opening deposit check, applied only when the account is opened"""
        return to_decimal(amount) >= self.minimum_initial_deposit

    def days_since_opened(self, as_of: Optional[date] = None) -> int:
        return ((as_of or date.today()) - self.date_opened).days

    def _check_debit(self, value: Decimal, as_of: Optional[date] = None) -> None:
        if self.balance - value < self.minimum_balance:
            raise BusinessRuleViolation(
                BusinessRule.MINIMUM_BALANCE,
                f"Withdrawal of {value:.2f} would take account {self.account_number} below its "
                f"minimum balance of {self.minimum_balance:.2f}"
            )
        if self.days_since_opened(as_of) < self.notice_period_days:
            raise BusinessRuleViolation(
                BusinessRule.NOTICE_PERIOD,
                f"Account {self.account_number} is within its {self.notice_period_days}-day notice period"
            )

    def withdraw_amount(self, amount: AmountLike, as_of: Optional[date] = None) -> Decimal:
        """
        Withdraw once the notice period has passed, keeping the minimum balance

        Returns:
            New balance
        """
        value = self._validate_mutation(amount)
        self._check_debit(value, as_of)
        self.balance -= value
        self._audit(
            "WITHDRAWAL",
            f"Withdrew {value:.2f} from account {self.account_number}. New balance: {self.balance:.2f}"
        )
        return self.balance

    def withdraw(self, amount: AmountLike) -> Decimal:
        return self.withdraw_amount(amount)


@dataclass(eq=False)
class ChequeAccount(Account):
    """Cheque account for salaried customers"""
    employer_name: str = ""
    employer_address: str = ""
    employment_status: str = ""

    kind: ClassVar[AccountKind] = AccountKind.CHEQUE


_ACCOUNT_CLASSES = {
    AccountKind.SAVINGS: SavingsAccount,
    AccountKind.INVESTMENT: InvestmentAccount,
    AccountKind.CHEQUE: ChequeAccount,
}


class AccountLockRegistry:
    """One re-entrant lock per account number"""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get_lock(self, account_number: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(account_number)
            if lock is None:
                lock = threading.RLock()
                self._locks[account_number] = lock
            return lock

    @contextmanager
    def lock(self, *account_numbers: str) -> Iterator[None]:
        """Hold the locks of every given account, acquired in sorted order"""
        locks = [self.get_lock(number) for number in sorted(set(account_numbers))]
        for lock in locks:
            lock.acquire()
        try:
            yield
        finally:
            for lock in reversed(locks):
                lock.release()


class AccountManager:
    """
    Opens, loads, persists and closes accounts
    """

    def __init__(
        self,
        storage: StorageInterface,
        customer_manager: 'CustomerManager',
        audit_ledger: AuditLedger,
        id_generator: IDGenerator,
        config: Optional[BankConfig] = None
    ):
        self.storage = storage
        self.customer_manager = customer_manager
        self.audit_ledger = audit_ledger
        self.id_generator = id_generator
        self.config = config or get_config()
        self.accounts_table = "accounts"
        self.locks = AccountLockRegistry()
        self.logger = get_logger("bac.accounts")

    def open_account(
        self,
        customer: Union['Customer', str],
        account_kind: AccountKind,
        initial_deposit: AmountLike = ZERO,
        actor_id: Optional[str] = None,
        date_opened: Optional[date] = None,
        employer_name: str = "",
        employer_address: str = "",
        employment_status: str = ""
    ) -> Account:
        """
        Open a new account for a customer

        Args:
            customer: Owning Customer or its customer id
            account_kind: Variant to open
            initial_deposit: Opening balance
            actor_id: Employee opening the account (the customer if omitted)
            date_opened: Opening date (today if not provided)
            employer_name: Cheque accounts only
            employer_address: Cheque accounts only
            employment_status: Cheque accounts only

        Returns:
            Created Account

        Raises:
            InvalidArgumentError: Negative opening deposit
            BusinessRuleViolation: Investment opening deposit below the minimum
            NotFoundError: Customer does not exist
        """
        if isinstance(customer, str):
            customer = self.customer_manager.require_customer(customer)

        deposit = to_decimal(initial_deposit)
        if deposit < ZERO:
            raise InvalidArgumentError("Initial deposit cannot be negative")

        account = self._build_account(
            account_kind,
            account_number=self.id_generator.generate_account_number(),
            balance=deposit,
            date_opened=date_opened or date.today(),
            customer_id=customer.customer_id,
            employer_name=employer_name,
            employer_address=employer_address,
            employment_status=employment_status
        )

        if not has_valid_precision(deposit, account.currency):
            raise InvalidArgumentError(
                f"Initial deposit {deposit} has more than {account.currency.precision} decimal places"
            )

        if isinstance(account, InvestmentAccount) and not account.validate_initial_deposit(deposit):
            raise BusinessRuleViolation(
                BusinessRule.INITIAL_DEPOSIT,
                f"Investment accounts require a minimum initial deposit of "
                f"{account.minimum_initial_deposit:.2f}"
            )

        with self.storage.atomic():
            self.save_account(account)
            customer.add_account(account)
            self.audit_ledger.record_audit(
                actor_id or customer.user_id,
                "ACCOUNT_OPENED",
                f"Opened {account_kind.value} account {account.account_number} for customer "
                f"{customer.customer_id} with initial deposit {deposit:.2f}"
            )

        log_action(
            self.logger, "info", f"Opened account {account.account_number}",
            user_id=actor_id, action="ACCOUNT_OPENED", resource=account.account_number
        )
        return account

    def close_account(self, account_number: str, actor_id: str) -> bool:
        """
        Close an account whose balance is zero

        Returns:
            True if closed, False if the balance prevented closure
        """
        with self.locks.lock(account_number):
            account = self.require_account(account_number)

            try:
                with self.storage.atomic():
                    account.update_status(AccountStatus.CLOSED)
                    self.save_account(account)
            except InvalidStateError as e:
                self.audit_ledger.record_audit(actor_id, "ACCOUNT_CLOSURE_FAILED", e.message)
                self.logger.info(f"Closure refused for {account_number}: {e.message}")
                return False

        self.audit_ledger.record_audit(actor_id, "ACCOUNT_CLOSED", f"Closed account {account_number}")
        log_action(
            self.logger, "info", f"Closed account {account_number}",
            user_id=actor_id, action="ACCOUNT_CLOSED", resource=account_number
        )
        return True

    def update_account_status(self, account_number: str, status: AccountStatus, actor_id: str) -> Account:
        """Change an account's status with audit trail"""
        with self.locks.lock(account_number):
            account = self.require_account(account_number)
            old_status = account.status
            with self.storage.atomic():
                account.update_status(status)
                self.save_account(account)

        self.audit_ledger.record_audit(
            actor_id, "ACCOUNT_STATUS_CHANGED",
            f"Account {account_number} status changed from {old_status.value} to {status.value}"
        )
        return account

    def suspend_customer_accounts(self, customer_id: str) -> List[str]:
        """
        Suspend every open account a customer owns

        Closed and already suspended accounts are left alone.

        Returns:
            Numbers of the accounts that were suspended
        """
        self.customer_manager.require_customer(customer_id)

        suspended = []
        for data in self.storage.find(self.accounts_table, {"customer_id": customer_id}):
            account_number = data['account_number']
            with self.locks.lock(account_number):
                account = self.require_account(account_number)
                if account.status in (AccountStatus.CLOSED, AccountStatus.SUSPENDED):
                    continue
                with self.storage.atomic():
                    account.update_status(AccountStatus.SUSPENDED)
                    self.save_account(account)
            suspended.append(account_number)

        self.logger.info(f"Suspended {len(suspended)} accounts of customer {customer_id}")
        return suspended

    def get_account(self, account_number: str) -> Optional[Account]:
        """Get account by account number, attached to its owner"""
        if not account_number:
            return None
        account_dict = self.storage.load(self.accounts_table, account_number)
        if not account_dict:
            return None

        account = self._account_from_dict(account_dict)
        self._attach_customer(account, {})
        return account

    def require_account(self, account_number: str) -> Account:
        account = self.get_account(account_number)
        if account is None:
            raise NotFoundError("Account", account_number)
        return account

    def get_all_accounts(self) -> List[Account]:
        """Load every account"""
        customers: Dict[str, Optional['Customer']] = {}
        accounts = []
        for data in self.storage.load_all(self.accounts_table):
            account = self._account_from_dict(data)
            self._attach_customer(account, customers)
            accounts.append(account)
        return accounts

    def get_customer_accounts(self, customer_id: str) -> List[Account]:
        """Get all accounts for a customer"""
        customers: Dict[str, Optional['Customer']] = {}
        accounts = []
        for data in self.storage.find(self.accounts_table, {"customer_id": customer_id}):
            account = self._account_from_dict(data)
            self._attach_customer(account, customers)
            accounts.append(account)
        return accounts

    def save_account(self, account: Account) -> None:
        """Save account to storage"""
        self.storage.save(self.accounts_table, account.account_number, self._account_to_dict(account))

    def update_account(self, account: Account) -> None:
        """Persist every field of an existing account"""
        if not self.storage.exists(self.accounts_table, account.account_number):
            raise NotFoundError("Account", account.account_number)
        self.save_account(account)

    def update_balance(self, account_number: str, new_balance: AmountLike) -> None:
        """Persist a new balance for an existing account"""
        balance = to_decimal(new_balance)
        if balance < ZERO:
            raise InvalidArgumentError("Balance cannot be negative")

        account_dict = self.storage.load(self.accounts_table, account_number)
        if not account_dict:
            raise NotFoundError("Account", account_number)

        account_dict['balance'] = str(balance)
        account_dict['updated_at'] = datetime.now(timezone.utc).isoformat()
        self.storage.save(self.accounts_table, account_number, account_dict)

    def delete_account(self, account_number: str) -> bool:
        """Remove an account record"""
        with self.locks.lock(account_number):
            return self.storage.delete(self.accounts_table, account_number)

    def _build_account(self, account_kind: AccountKind, **values) -> Account:
        """Instantiate a variant with the configured business rules"""
        employer_fields = {
            key: values.pop(key, "")
            for key in ('employer_name', 'employer_address', 'employment_status')
        }
        currency = Currency[self.config.currency]

        if account_kind == AccountKind.SAVINGS:
            return SavingsAccount(
                currency=currency,
                interest_rate=Decimal(self.config.savings_interest_rate),
                minimum_balance=Decimal(self.config.savings_minimum_balance),
                interest_period_days=self.config.savings_interest_period_days,
                **values
            )
        if account_kind == AccountKind.INVESTMENT:
            return InvestmentAccount(
                currency=currency,
                interest_rate=Decimal(self.config.investment_interest_rate),
                minimum_balance=Decimal(self.config.investment_minimum_balance),
                minimum_initial_deposit=Decimal(self.config.investment_minimum_initial_deposit),
                interest_period_days=self.config.investment_interest_period_days,
                notice_period_days=self.config.investment_notice_period_days,
                **values
            )
        return ChequeAccount(currency=currency, **values, **employer_fields)

    def _attach_customer(self, account: Account, cache: Dict[str, Optional['Customer']]) -> None:
        if not account.customer_id:
            return
        if account.customer_id not in cache:
            cache[account.customer_id] = self.customer_manager.get_customer(account.customer_id)
        customer = cache[account.customer_id]
        if customer is not None:
            customer.attach_account(account)

    def _account_to_dict(self, account: Account) -> Dict:
        """Convert Account to dictionary for storage"""
        result = {
            'account_number': account.account_number,
            'kind': account.kind.value,
            'balance': str(account.balance),
            'status': account.status.value,
            'date_created': account.date_created.isoformat(),
            'date_opened': account.date_opened.isoformat(),
            'customer_id': account.customer_id,
            'currency': account.currency.code,
            'updated_at': datetime.now(timezone.utc).isoformat()
        }

        if isinstance(account, InterestBearing):
            result['interest_rate'] = str(account.interest_rate)
            result['minimum_balance'] = str(account.minimum_balance)
            result['interest_period_days'] = account.interest_period_days
            result['last_interest_applied'] = account.last_interest_applied.isoformat()

        if isinstance(account, InvestmentAccount):
            result['minimum_initial_deposit'] = str(account.minimum_initial_deposit)
            result['notice_period_days'] = account.notice_period_days

        if isinstance(account, ChequeAccount):
            result['employer_name'] = account.employer_name
            result['employer_address'] = account.employer_address
            result['employment_status'] = account.employment_status

        return result

    def _account_from_dict(self, data: Dict) -> Account:
        """Convert dictionary to Account"""
        account_kind = AccountKind(data['kind'])
        values = {
            'account_number': data['account_number'],
            'balance': Decimal(data['balance']),
            'status': AccountStatus(data['status']),
            'date_created': date.fromisoformat(data['date_created']),
            'date_opened': date.fromisoformat(data['date_opened']),
            'customer_id': data.get('customer_id'),
            'currency': Currency[data.get('currency', 'BWP')],
        }

        if account_kind in (AccountKind.SAVINGS, AccountKind.INVESTMENT):
            values['interest_rate'] = Decimal(data['interest_rate'])
            values['minimum_balance'] = Decimal(data['minimum_balance'])
            values['interest_period_days'] = data['interest_period_days']
            if data.get('last_interest_applied'):
                values['last_interest_applied'] = date.fromisoformat(data['last_interest_applied'])

        if account_kind == AccountKind.INVESTMENT:
            values['minimum_initial_deposit'] = Decimal(data['minimum_initial_deposit'])
            values['notice_period_days'] = data['notice_period_days']

        if account_kind == AccountKind.CHEQUE:
            values['employer_name'] = data.get('employer_name', '')
            values['employer_address'] = data.get('employer_address', '')
            values['employment_status'] = data.get('employment_status', '')

        return _ACCOUNT_CLASSES[account_kind](**values)
