"""CLI command tests (flask system/users/perms/maintenance)."""

from stockroom.extensions import db
from stockroom.models import User


class TestSystemCommands:

    def test_init_creates_admin_once(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init", "--admin-email", "root@stockroom.test"])
        assert result.exit_code == 0, result.output
        assert "PASS Created admin: root@stockroom.test" in result.output

        result = runner.invoke(args=["system", "init", "--admin-email", "other@stockroom.test"])
        assert "Admin already exists" in result.output
        assert db.session.query(User).filter_by(role="admin").count() == 1

    def test_users_create_and_list(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--email", "clerk@stockroom.test",
            "--password", "Password123!",
            "--role", "manager",
        ])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=["users", "list"])
        assert "clerk@stockroom.test" in result.output
        assert "manager" in result.output

    def test_users_create_rejects_weak_password(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--email", "clerk@stockroom.test",
            "--password", "weak",
            "--role", "viewer",
        ])
        assert result.exit_code == 1
        assert "FAIL" in result.output


class TestPermsCommands:

    def test_list_for_role(self, app):
        result = app.test_cli_runner().invoke(args=["perms", "list", "--role", "viewer"])
        assert "VIEW_INVENTORY" in result.output
        assert "MANAGE_INVENTORY" not in result.output


class TestMaintenanceCommands:

    def test_cleanup_role_requests(self, app):
        result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-role-requests", "--retention-days", "30"])
        assert result.exit_code == 0, result.output
        assert "Deleted 0 role change requests" in result.output

    def test_process_credential_deletions(self, admin, viewer, app):
        from stockroom.services import user_service

        user_service.delete_user(admin, viewer.id)
        result = app.test_cli_runner().invoke(args=["maintenance", "process-credential-deletions"])
        assert result.exit_code == 0, result.output
        assert "Processed 1 credential deletions (0 failed)." in result.output
