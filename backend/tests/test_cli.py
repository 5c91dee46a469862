"""
CLI command tests (flask system ..., flask users ...).
"""

from shopledger.extensions import database
from shopledger.models import Customer, Supplier, User


class TestSystemCommands:

    def test_init_is_idempotent(self, app):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init"])
        second = runner.invoke(args=["system", "init"])

        assert first.exit_code == 0, first.output
        assert "Walk-in customer (ID: 0) ready" in first.output
        assert "Created 2 demo suppliers" in first.output
        assert second.exit_code == 0, second.output
        assert "Suppliers already exist" in second.output
        assert "Created 0 demo customers" in second.output

        with app.app_context():
            assert Supplier.query.count() == 2
            assert Customer.query.count() == 3

    def test_ping(self, app):
        result = app.test_cli_runner().invoke(args=["system", "ping"])

        assert result.exit_code == 0
        assert "Database reachable" in result.output

    def test_ping_failure_exits_non_zero(self, app, monkeypatch):
        monkeypatch.setattr(database, "ping", lambda: False)

        result = app.test_cli_runner().invoke(args=["system", "ping"])

        assert result.exit_code == 1
        assert "Database unreachable" in result.output

    def test_health_prints_status(self, app):
        result = app.test_cli_runner().invoke(args=["system", "health"])

        assert result.exit_code == 0
        assert '"is_healthy"' in result.output


class TestUserCommands:

    def test_create_and_list(self, app):
        runner = app.test_cli_runner()

        created = runner.invoke(args=[
            "users", "create",
            "--username", "owner", "--name", "Shop Owner",
            "--password", "secret1", "--role", "admin",
        ])
        listed = runner.invoke(args=["users", "list"])

        assert created.exit_code == 0, created.output
        assert "Created user: owner with role 'admin'" in created.output
        assert listed.exit_code == 0
        assert "owner" in listed.output
        assert "Shop Owner" in listed.output

        with app.app_context():
            assert User.query.filter_by(username="owner").one().password_hash != "secret1"

    def test_duplicate_username_fails(self, app):
        runner = app.test_cli_runner()
        args = ["users", "create", "--username", "owner", "--name", "Owner", "--password", "secret1", "--role", "admin"]

        runner.invoke(args=args)
        second = runner.invoke(args=args)

        assert second.exit_code == 1
        assert "Username already exists" in second.output

    def test_list_without_users(self, app):
        result = app.test_cli_runner().invoke(args=["users", "list"])

        assert result.exit_code == 0
        assert "No users found." in result.output
