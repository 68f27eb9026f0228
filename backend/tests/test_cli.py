# Overview: Pytest coverage for the Flask CLI command groups.

from invoicing.extensions import db
from invoicing.models import Invoice, InvoiceStatus, User


def test_seed_is_idempotent(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "seed"])
    assert result.exit_code == 0, result.output
    assert "Created 3 sample invoices" in result.output
    assert db.session.query(User).count() == 3

    invoices = db.session.query(Invoice).order_by(Invoice.invoice_number).all()
    assert [i.invoice_number for i in invoices] == ["INV-2024-001", "INV-2024-002", "INV-2024-003"]
    assert str(invoices[0].total_amount) == "2500.00"
    assert invoices[2].status == InvoiceStatus.OVERDUE

    result = runner.invoke(args=["system", "seed"])
    assert "skipping seed" in result.output
    assert db.session.query(Invoice).count() == 3


def test_users_create_and_list(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create",
        "--username", "frank", "--email", "frank@example.com",
        "--password", "FrankPass1", "--role", "Admin",
    ])
    assert result.exit_code == 0, result.output

    result = runner.invoke(args=[
        "users", "create",
        "--username", "FRANK", "--email", "other@example.com",
        "--password", "FrankPass1",
    ])
    assert result.exit_code != 0
    assert "Username already exists" in result.output

    result = runner.invoke(args=["users", "list"])
    assert "frank" in result.output
    assert "Admin" in result.output


def test_purge_expired(app, token_service, user_u):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["tokens", "purge-expired"])
    assert result.exit_code == 0
    assert "Cleared 0 expired refresh token(s)" in result.output
