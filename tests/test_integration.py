"""
Integration tests for the wired banking system

Runs end-to-end flows through BankingSystem on SQLite storage, including
reopening the database and continuing where the last session stopped.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from bac_banking.accounts import AccountKind, AccountStatus
from bac_banking.config import BankConfig
from bac_banking.identity import UserRole
from bac_banking.storage import InMemoryStorage, SQLiteStorage
from bac_banking.system import BankingSystem
from bac_banking.transactions import TransactionType


class TestBankingSystem:
    """End-to-end flows on persistent storage"""

    @pytest.fixture
    def db_path(self, tmp_path):
        return tmp_path / "bac.db"

    @pytest.fixture
    def system(self, db_path):
        system = BankingSystem(SQLiteStorage(db_path), BankConfig())
        yield system
        system.shutdown()

    def _employee(self, system):
        return system.identity_store.register_user("teller", "Passw0rd!", UserRole.BANK_EMPLOYEE)

    def test_full_customer_flow(self, system):
        employee = self._employee(system)

        login = system.auth_service.login("teller", "Passw0rd!")
        assert login.success
        assert login.role == UserRole.BANK_EMPLOYEE

        customer = system.customer_manager.create_customer(
            username="jdoe",
            password="Passw0rd!",
            first_name="Jane",
            surname="Doe",
            email="jane.doe@example.com",
            actor_id=employee.user_id
        )
        cheque = system.account_manager.open_account(
            customer, AccountKind.CHEQUE, Decimal('1000.00'), actor_id=employee.user_id,
            employer_name="Debswana"
        )
        savings = system.account_manager.open_account(
            customer, AccountKind.SAVINGS, Decimal('500.00'), actor_id=employee.user_id
        )

        deposit = system.transaction_processor.process_deposit(
            cheque.account_number, Decimal('200.00'), employee.user_id
        )
        withdrawal = system.transaction_processor.process_withdrawal(
            cheque.account_number, Decimal('100.00'), employee.user_id
        )
        transfer = system.transaction_processor.transfer_funds(
            cheque.account_number, savings.account_number, Decimal('300.00'), employee.user_id
        )

        assert deposit.success and withdrawal.success and transfer.success
        accounts = system.account_manager.get_customer_accounts(customer.customer_id)
        balances = {a.account_number: a.balance for a in accounts}
        assert balances[cheque.account_number] == Decimal('800.00')
        assert balances[savings.account_number] == Decimal('800.00')

        system.auth_service.logout()

        actions = [e.action for e in system.audit_ledger.get_all_entries()]
        for expected in ("LOGIN_SUCCESS", "CUSTOMER_CREATED", "ACCOUNT_OPENED",
                         "DEPOSIT_SUCCESS", "WITHDRAWAL_SUCCESS", "TRANSFER_SUCCESS", "LOGOUT"):
            assert expected in actions

    def test_state_survives_restart(self, db_path):
        first = BankingSystem(SQLiteStorage(db_path), BankConfig())
        employee = self._employee(first)
        customer = first.customer_manager.create_customer(
            username="jdoe", password="Passw0rd!", first_name="Jane", surname="Doe",
            email="jane.doe@example.com", actor_id=employee.user_id
        )
        account = first.account_manager.open_account(
            customer, AccountKind.SAVINGS, Decimal('1000.00'),
            date_opened=date.today() - timedelta(days=31)
        )
        first.shutdown()

        second = BankingSystem(SQLiteStorage(db_path), BankConfig())
        try:
            reloaded = second.account_manager.get_account(account.account_number)
            assert reloaded.balance == Decimal('1000.00')
            assert reloaded.customer.full_name == "Jane Doe"

            other = second.customer_manager.create_customer(
                username="jsmith", password="Passw0rd!", first_name="John", surname="Smith",
                email="john@example.com", actor_id=employee.user_id
            )
            assert other.customer_id == "CUST-002"

            newer = second.account_manager.open_account(other, AccountKind.CHEQUE)
            assert int(newer.account_number[3:]) > int(account.account_number[3:])

            summary = second.interest_scheduler.run_once()
            assert summary['total_interest'] == Decimal('2.12')
            payments = second.transaction_processor.get_account_transactions(
                account.account_number, [TransactionType.INTEREST_PAYMENT]
            )
            assert len(payments) == 1
        finally:
            second.shutdown()

    def test_customer_trail_survives_restart(self, db_path):
        first = BankingSystem(SQLiteStorage(db_path), BankConfig())
        employee = self._employee(first)
        customer = first.customer_manager.create_customer(
            username="jdoe", password="Passw0rd!", first_name="Jane", surname="Doe",
            email="jane.doe@example.com", actor_id=employee.user_id
        )
        account = first.account_manager.open_account(
            customer, AccountKind.CHEQUE, Decimal('100.00'), actor_id=employee.user_id
        )
        first.transaction_processor.process_deposit(account.account_number, "50.00", employee.user_id)
        first.shutdown()

        second = BankingSystem(SQLiteStorage(db_path), BankConfig())
        try:
            trail = second.customer_manager.get_customer(customer.customer_id).audit_trail
            deposits = [e for e in trail if e.action == "DEPOSIT"]
            assert len(deposits) == 1
            assert deposits[0].details == (
                f"Deposited 50.00 to account {account.account_number}. New balance: 150.00"
            )
        finally:
            second.shutdown()

    def test_close_and_delete_customer(self, system):
        employee = self._employee(system)
        customer = system.customer_manager.create_customer(
            username="jdoe", password="Passw0rd!", first_name="Jane", surname="Doe",
            email="jane.doe@example.com", actor_id=employee.user_id
        )
        account = system.account_manager.open_account(customer, AccountKind.CHEQUE, Decimal('50'))

        assert not system.account_manager.close_account(account.account_number, employee.user_id)

        system.transaction_processor.process_withdrawal(account.account_number, Decimal('50'), employee.user_id)
        assert system.account_manager.close_account(account.account_number, employee.user_id)
        assert system.account_manager.get_account(account.account_number).status == AccountStatus.CLOSED

        assert system.customer_manager.delete_customer(customer.customer_id, employee.user_id)

    def test_purge_audit_trail(self, system):
        employee = self._employee(system)
        system.audit_ledger.record_audit(employee.user_id, "LOGIN_SUCCESS", "recent")

        assert system.purge_audit_trail() == 0
        assert system.purge_audit_trail(days=0) == 1
        assert system.audit_ledger.count_entries() == 0

    def test_from_config(self, tmp_path):
        config = BankConfig(storage_backend="sqlite", database_path=str(tmp_path / "cfg.db"))

        system = BankingSystem.from_config(config)
        try:
            assert isinstance(system.storage, SQLiteStorage)
            assert system.config is config
        finally:
            system.shutdown()

    def test_start_and_shutdown(self):
        config = BankConfig(interest_sweep_interval_seconds=3600.0)
        system = BankingSystem(InMemoryStorage(), config)

        system.start()
        assert system.interest_scheduler.is_running()

        system.shutdown()
        assert not system.interest_scheduler.is_running()
