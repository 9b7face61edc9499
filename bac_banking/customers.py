"""
Customer Management Module

The customer aggregate owns its accounts and an audit trail of account
activity. Both are handed out as copies. A customer built by the manager
writes its trail to the audit ledger and reads it back on reload.

A customer is created by an administrative action, edited through
update_profile, and cannot be deleted while it still holds an open or
funded account.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .accounts import Account, AccountStatus
from .audit import AuditEntry, AuditLedger
from .currency import ZERO
from .errors import InvalidArgumentError, InvalidStateError, NotFoundError
from .identity import IdentityStore, UserRole
from .logging_config import get_logger, log_action
from .storage import StorageInterface


class CustomerType(Enum):
    """Kinds of customer relationship"""
    INDIVIDUAL = "individual"
    JOINT = "joint"
    BUSINESS = "business"


def _validate_email(email: Optional[str]) -> None:
    if not email or "@" not in email:
        raise InvalidArgumentError("Invalid email format")


def _validate_name(value: Optional[str], label: str) -> None:
    if not value or not value.strip():
        raise InvalidArgumentError(f"{label} cannot be null or empty")


@dataclass(eq=False)
class Customer:
    """
    Customer profile owning accounts and an audit trail
    """
    customer_id: str
    user_id: str
    username: str
    first_name: str
    surname: str
    email: str
    address: str = ""
    phone_number: str = ""
    customer_type: CustomerType = CustomerType.INDIVIDUAL
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _accounts: List[Account] = field(default_factory=list, repr=False)
    _audit_trail: List[AuditEntry] = field(default_factory=list, repr=False)
    audit_ledger: Optional[AuditLedger] = field(default=None, repr=False)

    def __post_init__(self):
        _validate_name(self.customer_id, "Customer id")
        _validate_name(self.first_name, "First name")
        _validate_name(self.surname, "Surname")
        _validate_email(self.email)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.surname}"

    @property
    def accounts(self) -> List[Account]:
        """Copy of the owned accounts, in the order they were added"""
        return list(self._accounts)

    @property
    def audit_trail(self) -> List[AuditEntry]:
        """Copy of the audit trail, oldest first"""
        return list(self._audit_trail)

    def attach_account(self, account: Account) -> None:
        """Link an account to this customer without auditing it"""
        account.customer = self
        account.customer_id = self.customer_id
        if self.find_account(account.account_number) is None:
            self._accounts.append(account)

    def add_account(self, account: Account) -> None:
        """Take ownership of a newly created account"""
        if account is None:
            raise InvalidArgumentError("Account cannot be null")
        self.attach_account(account)
        self.record_audit(
            "ACCOUNT_CREATED",
            f"{account.kind.value.capitalize()} account {account.account_number} added"
        )

    def find_account(self, account_number: str) -> Optional[Account]:
        for account in self._accounts:
            if account.account_number == account_number:
                return account
        return None

    @property
    def total_balance(self) -> Decimal:
        return sum((account.balance for account in self._accounts), ZERO)

    def can_be_deleted(self) -> bool:
        """True when every owned account is closed and empty"""
        return all(
            account.balance == ZERO and account.status == AccountStatus.CLOSED
            for account in self._accounts
        )

    def update_profile(
        self,
        first_name: Optional[str] = None,
        surname: Optional[str] = None,
        address: Optional[str] = None,
        phone_number: Optional[str] = None,
        email: Optional[str] = None
    ) -> None:
        """Update profile fields that are provided"""
        if first_name is not None:
            _validate_name(first_name, "First name")
        if surname is not None:
            _validate_name(surname, "Surname")
        if email is not None:
            _validate_email(email)

        if first_name is not None:
            self.first_name = first_name
        if surname is not None:
            self.surname = surname
        if address is not None:
            self.address = address
        if phone_number is not None:
            self.phone_number = phone_number
        if email is not None:
            self.email = email

        self.record_audit("PROFILE_UPDATED", f"Profile updated for customer {self.customer_id}")

    def record_audit(self, action: str, details: str) -> Optional[AuditEntry]:
        """
        Append an entry to this customer's audit trail

        With a ledger attached the entry is persisted under the customer's
        user id; None is returned when the ledger drops it.
        """
        if self.audit_ledger is not None:
            entry = self.audit_ledger.record_audit(self.user_id, action, details)
            if entry is not None:
                self._audit_trail.append(entry)
            return entry

        entry = AuditEntry(
            audit_id=str(uuid.uuid4()),
            action=action,
            timestamp=datetime.now(timezone.utc),
            user_id=self.user_id,
            details=details
        )
        self._audit_trail.append(entry)
        return entry


class CustomerManager:
    """
    Manages customer lifecycle and profile updates
    """

    def __init__(
        self,
        storage: StorageInterface,
        identity_store: IdentityStore,
        audit_ledger: AuditLedger
    ):
        self.storage = storage
        self.identity_store = identity_store
        self.audit_ledger = audit_ledger
        self.table_name = "customers"
        self.accounts_table = "accounts"
        self.logger = get_logger("bac.customers")

    def create_customer(
        self,
        username: str,
        password: str,
        first_name: str,
        surname: str,
        email: str,
        address: str = "",
        phone_number: str = "",
        customer_type: CustomerType = CustomerType.INDIVIDUAL,
        actor_id: Optional[str] = None
    ) -> Customer:
        """
        Create a new customer with login credentials

        Args:
            username: Login name for the customer
            password: Initial password
            first_name: Customer's first name
            surname: Customer's surname
            email: Customer's email address
            address: Postal address
            phone_number: Contact number
            customer_type: Relationship type
            actor_id: Employee creating the customer (the customer if omitted)

        Returns:
            Created Customer object
        """
        _validate_name(first_name, "First name")
        _validate_name(surname, "Surname")
        _validate_email(email)

        with self.storage.atomic():
            user = self.identity_store.register_user(username, password, UserRole.CUSTOMER)
            customer = Customer(
                customer_id=user.user_id,
                user_id=user.user_id,
                username=user.username,
                first_name=first_name,
                surname=surname,
                email=email,
                address=address,
                phone_number=phone_number,
                customer_type=customer_type,
                audit_ledger=self.audit_ledger
            )
            self._save_customer(customer)

        self.audit_ledger.record_audit(
            actor_id or customer.user_id,
            "CUSTOMER_CREATED",
            f"Created customer {customer.customer_id} ({customer.full_name})"
        )
        log_action(
            self.logger, "info", f"Created customer {customer.customer_id}",
            user_id=actor_id, action="CUSTOMER_CREATED", resource=customer.customer_id
        )
        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        """Get customer by ID"""
        if not customer_id:
            return None
        customer_dict = self.storage.load(self.table_name, customer_id)
        if customer_dict:
            return self._customer_from_dict(customer_dict)
        return None

    def require_customer(self, customer_id: str) -> Customer:
        customer = self.get_customer(customer_id)
        if customer is None:
            raise NotFoundError("Customer", customer_id)
        return customer

    def get_customer_by_username(self, username: str) -> Optional[Customer]:
        customers = self.storage.find(self.table_name, {"username": username})
        if customers:
            return self._customer_from_dict(customers[0])
        return None

    def get_all_customers(self) -> List[Customer]:
        return [self._customer_from_dict(data) for data in self.storage.load_all(self.table_name)]

    def update_profile(
        self,
        customer_id: str,
        first_name: Optional[str] = None,
        surname: Optional[str] = None,
        address: Optional[str] = None,
        phone_number: Optional[str] = None,
        email: Optional[str] = None,
        actor_id: Optional[str] = None
    ) -> Customer:
        """
        Update customer profile information

        The customer's own trail records the change; an employee acting on
        the customer's behalf gets a second entry under their own id.
        """
        customer = self.require_customer(customer_id)
        with self.storage.atomic():
            customer.update_profile(
                first_name=first_name,
                surname=surname,
                address=address,
                phone_number=phone_number,
                email=email
            )
            self._save_customer(customer)

        if actor_id and actor_id != customer.user_id:
            self.audit_ledger.record_audit(
                actor_id,
                "PROFILE_UPDATED",
                f"Profile updated for customer {customer_id}"
            )
        return customer

    def delete_customer(self, customer_id: str, actor_id: Optional[str] = None) -> bool:
        """
        Remove a customer record

        Raises:
            NotFoundError: Customer does not exist
            InvalidStateError: Customer still owns an open or funded account
        """
        customer = self.require_customer(customer_id)

        for account_data in self.storage.find(self.accounts_table, {"customer_id": customer_id}):
            funded = Decimal(account_data['balance']) > ZERO
            if funded or account_data['status'] != AccountStatus.CLOSED.value:
                raise InvalidStateError(
                    f"Customer {customer_id} still owns account {account_data['account_number']}"
                )

        deleted = self.storage.delete(self.table_name, customer_id)
        self.audit_ledger.record_audit(
            actor_id or customer.user_id,
            "CUSTOMER_DELETED",
            f"Deleted customer {customer_id}"
        )
        return deleted

    def _save_customer(self, customer: Customer) -> None:
        """Save customer to storage"""
        self.storage.save(self.table_name, customer.customer_id, self._customer_to_dict(customer))

    def _customer_to_dict(self, customer: Customer) -> Dict:
        """Convert Customer to dictionary for storage"""
        return {
            'customer_id': customer.customer_id,
            'user_id': customer.user_id,
            'username': customer.username,
            'first_name': customer.first_name,
            'surname': customer.surname,
            'email': customer.email,
            'address': customer.address,
            'phone_number': customer.phone_number,
            'customer_type': customer.customer_type.value,
            'created_at': customer.created_at.isoformat()
        }

    def _customer_from_dict(self, data: Dict) -> Customer:
        """Convert dictionary to Customer"""
        return Customer(
            customer_id=data['customer_id'],
            user_id=data['user_id'],
            username=data['username'],
            first_name=data['first_name'],
            surname=data['surname'],
            email=data['email'],
            address=data.get('address', ''),
            phone_number=data.get('phone_number', ''),
            customer_type=CustomerType(data['customer_type']),
            created_at=datetime.fromisoformat(data['created_at']),
            _audit_trail=self.audit_ledger.get_entries_for_user(data['user_id']),
            audit_ledger=self.audit_ledger
        )
