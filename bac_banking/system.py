"""
Banking System Module

Wires storage, identity, audit, managers, administration, the transaction
processor and the interest scheduler into one object. Every component receives its
collaborators explicitly; nothing here is a module-level singleton.
"""

from typing import Optional

from .accounts import AccountManager
from .admin import AdministrationService
from .audit import AuditLedger
from .config import BankConfig, get_config
from .customers import CustomerManager
from .identity import AuthenticationService, IdentityStore
from .ids import IDGenerator
from .interest import InterestAccrualScheduler
from .logging_config import get_logger
from .storage import StorageInterface, create_storage
from .transactions import TransactionProcessor


class BankingSystem:
    """Banking engine with all components initialized"""

    def __init__(self, storage: StorageInterface, config: Optional[BankConfig] = None):
        self.config = config or get_config()
        self.storage = storage
        self.logger = get_logger("bac")

        # Initialize core components
        self.id_generator = IDGenerator(self.storage)
        self.identity_store = IdentityStore(
            self.storage, self.id_generator, self.config.password_min_length
        )
        self.audit_ledger = AuditLedger(self.storage, self.identity_store, self.id_generator)
        self.auth_service = AuthenticationService(self.identity_store, self.audit_ledger)
        self.customer_manager = CustomerManager(self.storage, self.identity_store, self.audit_ledger)
        self.account_manager = AccountManager(
            self.storage, self.customer_manager, self.audit_ledger,
            self.id_generator, self.config
        )
        self.transaction_processor = TransactionProcessor(
            self.storage, self.account_manager, self.audit_ledger, self.id_generator
        )
        self.interest_scheduler = InterestAccrualScheduler(
            self.account_manager,
            self.transaction_processor,
            self.audit_ledger,
            interval_seconds=self.config.interest_sweep_interval_seconds,
            initial_delay=self.config.interest_initial_delay_seconds,
            system_actor_id=self.config.system_actor_id
        )
        self.administration = AdministrationService(
            self.identity_store, self.customer_manager, self.account_manager, self.audit_ledger
        )

    @classmethod
    def from_config(cls, config: Optional[BankConfig] = None) -> 'BankingSystem':
        """Build the system with the storage backend named in configuration"""
        config = config or get_config()
        storage = create_storage(config.storage_backend, config.database_path)
        return cls(storage, config)

    def purge_audit_trail(self, days: Optional[int] = None) -> int:
        """Apply the audit retention policy"""
        if days is None:
            days = self.config.audit_retention_days
        return self.audit_ledger.delete_older_than(days)

    def start(self) -> None:
        self.interest_scheduler.start()
        self.logger.info("Banking system started")

    def shutdown(self) -> None:
        """Stop background work and release storage"""
        self.interest_scheduler.stop()
        self.storage.close()
        self.logger.info("Banking system stopped")
