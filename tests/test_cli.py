"""
Tests for the operator CLI.
"""

import pytest
from click.testing import CliRunner

from conftest import TEST_PASSWORD, TestSessionLocal, make_user
from maker_checker import cli as cli_module
from maker_checker.models.audit_log import AuditLog
from maker_checker.models.enums import AuditAction, UserRole
from maker_checker.models.user import User
from maker_checker.services.auth_service import verify_password


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.setattr(cli_module, "SessionLocal", TestSessionLocal)
    return CliRunner()


def seed(runner, email="root@example.com", **kwargs):
    args = ["seed-superadmin", "--email", email, "--first-name", "Rita", "--last-name", "Root"]
    return runner.invoke(cli_module.cli, args, **kwargs)


class TestSeedSuperadmin:

    def test_creates_first_superadmin(self, runner, db_session):
        result = seed(runner, input="long-enough-pass\nlong-enough-pass\n")

        assert result.exit_code == 0, result.output
        assert "Superadmin root@example.com created" in result.output
        user = db_session.query(User).one()
        assert user.role == UserRole.SUPERADMIN
        assert verify_password("long-enough-pass", user.password_hash)
        entry = db_session.query(AuditLog).one()
        assert entry.action == AuditAction.USER_CREATED.value

    def test_promotes_existing_user(self, runner, db_session):
        maker = make_user(db_session, UserRole.MAKER, email="root@example.com")

        result = seed(runner, input="ignored-pass\nignored-pass\n")

        assert result.exit_code == 0, result.output
        assert "promoted to superadmin" in result.output
        db_session.expire_all()
        user = db_session.get(User, maker.id)
        assert user.role == UserRole.SUPERADMIN
        assert verify_password(TEST_PASSWORD, user.password_hash)

    def test_bad_input_exits_with_error(self, runner, db_session):
        result = seed(runner, email="not-an-email", input="long-enough-pass\nlong-enough-pass\n")

        assert result.exit_code == 1
        assert "Invalid email format" in result.output
        assert db_session.query(User).count() == 0
