"""
Tests for users, password hashing and login/logout
"""

import pytest

from bac_banking.audit import AuditLedger
from bac_banking.errors import InvalidArgumentError, NotFoundError
from bac_banking.identity import (
    AuthenticationService, IdentityStore, UserRole, generate_password, is_strong_password
)
from bac_banking.ids import IDGenerator
from bac_banking.storage import InMemoryStorage


class TestPasswordStrength:
    def test_strong_password(self):
        assert is_strong_password("Passw0rd!")

    @pytest.mark.parametrize("password", [
        None,
        "Pa0!",          # too short
        "password1!",    # no upper case
        "PASSWORD1!",    # no lower case
        "Password!!",    # no digit
        "Password11",    # no special character
    ])
    def test_weak_passwords(self, password):
        assert not is_strong_password(password)

    @pytest.mark.parametrize("length", [4, 12, 20])
    def test_generated_password_is_strong(self, length):
        password = generate_password(length)

        assert len(password) == length
        assert is_strong_password(password, min_length=4)

    def test_generated_password_too_short(self):
        with pytest.raises(InvalidArgumentError):
            generate_password(3)

    def test_custom_minimum_length(self):
        assert not is_strong_password("Passw0rd!", min_length=12)
        assert is_strong_password("LongerPassw0rd!", min_length=12)


class TestIdentityStore:
    """Test user registration and authentication"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.identity = IdentityStore(self.storage, IDGenerator())

    def test_register_assigns_role_prefixed_ids(self):
        customer = self.identity.register_user("jdoe", "Passw0rd!", UserRole.CUSTOMER)
        employee = self.identity.register_user("teller", "Passw0rd!", UserRole.BANK_EMPLOYEE)
        admin = self.identity.register_user("root", "Passw0rd!", UserRole.ADMINISTRATOR)

        assert customer.user_id == "CUST-001"
        assert employee.user_id == "BE-001"
        assert admin.user_id == "ADM-001"

    def test_password_is_not_stored_in_clear(self):
        user = self.identity.register_user("jdoe", "Passw0rd!", UserRole.CUSTOMER)

        stored = self.storage.load("users", user.user_id)
        assert "Passw0rd!" not in stored.values()
        assert len(stored['password_salt']) == 32
        assert len(stored['password_hash']) == 128

    def test_same_password_different_salt(self):
        first = self.identity.register_user("a_user", "Passw0rd!", UserRole.CUSTOMER)
        second = self.identity.register_user("b_user", "Passw0rd!", UserRole.CUSTOMER)

        assert first.password_hash != second.password_hash

    def test_register_rejects_weak_password(self):
        with pytest.raises(InvalidArgumentError):
            self.identity.register_user("jdoe", "password", UserRole.CUSTOMER)

    def test_register_rejects_duplicate_username(self):
        self.identity.register_user("jdoe", "Passw0rd!", UserRole.CUSTOMER)

        with pytest.raises(InvalidArgumentError):
            self.identity.register_user("jdoe", "0therPass!", UserRole.CUSTOMER)

    def test_register_rejects_empty_username(self):
        with pytest.raises(InvalidArgumentError):
            self.identity.register_user("  ", "Passw0rd!", UserRole.CUSTOMER)

    def test_authenticate(self):
        self.identity.register_user("jdoe", "Passw0rd!", UserRole.CUSTOMER)

        assert self.identity.authenticate("jdoe", "Passw0rd!")
        assert not self.identity.authenticate("jdoe", "WrongPass1!")
        assert not self.identity.authenticate("nobody", "Passw0rd!")
        assert not self.identity.authenticate("jdoe", None)

    def test_exists_and_lookups(self):
        user = self.identity.register_user("teller", "Passw0rd!", UserRole.BANK_EMPLOYEE)

        assert self.identity.exists(user.user_id)
        assert not self.identity.exists("BE-999")
        assert not self.identity.exists(None)
        assert self.identity.get_user(user.user_id).role == UserRole.BANK_EMPLOYEE
        assert self.identity.get_user_by_username("teller").user_id == user.user_id
        assert len(self.identity.get_all_users()) == 1

    def test_change_password(self):
        user = self.identity.register_user("jdoe", "Passw0rd!", UserRole.CUSTOMER)

        assert not self.identity.change_password(user.user_id, "WrongPass1!", "N3wPassword!")
        assert not self.identity.change_password(user.user_id, "Passw0rd!", "weak")
        assert self.identity.change_password(user.user_id, "Passw0rd!", "N3wPassword!")

        assert self.identity.authenticate("jdoe", "N3wPassword!")
        assert not self.identity.authenticate("jdoe", "Passw0rd!")

    def test_change_password_unknown_user(self):
        with pytest.raises(NotFoundError):
            self.identity.change_password("CUST-404", "Passw0rd!", "N3wPassword!")

    def test_change_role(self):
        user = self.identity.register_user("jdoe", "Passw0rd!", UserRole.CUSTOMER)

        updated = self.identity.change_role(user.user_id, UserRole.BANK_EMPLOYEE)

        assert updated.role == UserRole.BANK_EMPLOYEE
        assert self.identity.get_user(user.user_id).role == UserRole.BANK_EMPLOYEE

    def test_change_role_rejects_missing_role_and_user(self):
        user = self.identity.register_user("jdoe", "Passw0rd!", UserRole.CUSTOMER)

        with pytest.raises(InvalidArgumentError):
            self.identity.change_role(user.user_id, None)
        with pytest.raises(NotFoundError):
            self.identity.change_role("CUST-404", UserRole.CUSTOMER)

    def test_reset_password(self):
        user = self.identity.register_user("jdoe", "Passw0rd!", UserRole.CUSTOMER)

        temporary = self.identity.reset_password(user.user_id)

        assert is_strong_password(temporary)
        assert self.identity.authenticate("jdoe", temporary)
        assert not self.identity.authenticate("jdoe", "Passw0rd!")

    def test_reset_password_unknown_user(self):
        with pytest.raises(NotFoundError):
            self.identity.reset_password("CUST-404")


class TestAuthenticationService:
    """Test login/logout and their audit entries"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.id_generator = IDGenerator()
        self.identity = IdentityStore(self.storage, self.id_generator)
        self.audit_ledger = AuditLedger(self.storage, self.identity, self.id_generator)
        self.auth = AuthenticationService(self.identity, self.audit_ledger)
        self.user = self.identity.register_user("teller", "Passw0rd!", UserRole.BANK_EMPLOYEE)

    def test_login_success(self):
        result = self.auth.login("teller", "Passw0rd!")

        assert result.success
        assert result.role == UserRole.BANK_EMPLOYEE
        assert self.auth.is_authenticated
        assert self.auth.current_user.user_id == self.user.user_id
        assert self.identity.get_user(self.user.user_id).last_login is not None

        entries = self.audit_ledger.get_entries_by_action("LOGIN_SUCCESS")
        assert len(entries) == 1
        assert entries[0].user_id == self.user.user_id

    def test_login_failure_is_not_audited(self):
        """Failed logins are attributed to an unknown actor and dropped"""
        result = self.auth.login("teller", "WrongPass1!")

        assert not result.success
        assert result.message == "Invalid username or password"
        assert not self.auth.is_authenticated
        assert self.audit_ledger.count_entries() == 0

    def test_logout(self):
        self.auth.login("teller", "Passw0rd!")
        self.auth.logout()

        assert not self.auth.is_authenticated
        assert self.auth.current_user is None
        assert len(self.audit_ledger.get_entries_by_action("LOGOUT")) == 1

    def test_logout_without_session(self):
        self.auth.logout()
        assert self.audit_ledger.count_entries() == 0
