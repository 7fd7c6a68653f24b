"""CLI commands for the Compliance Ledger API."""

import json
from datetime import date, timedelta

import click

from compliance_api.db.session import SessionLocal, init_db
from compliance_api.errors import StorageError, ValidationError
from compliance_api.ledger.service import AuditChainBuilder, audit_run_lock
from compliance_api.risk.engine import RiskPredictionService
from compliance_api.settings import get_settings
from compliance_api.utils.clock import utcnow


def _parse_date(value):
    return date.fromisoformat(value) if value else None


@click.group()
def cli():
    """Compliance Ledger API CLI."""
    pass


@cli.command("init-db")
def init_db_command():
    """Create database tables (development only; use alembic elsewhere)."""
    init_db()
    click.echo("✓ Database tables created.")


@cli.command("audit-export")
@click.option("--period-start", help="First day covered (YYYY-MM-DD); defaults to yesterday.")
@click.option("--period-end", help="Day after the last day covered (YYYY-MM-DD).")
@click.option("--no-upload", is_flag=True, help="Skip the object storage export.")
def audit_export(period_start, period_end, no_upload):
    """Append the period's audit records to the chain."""
    settings = get_settings()
    start = _parse_date(period_start) or utcnow().date() - timedelta(days=1)
    storage = None
    if settings.audit_export_enabled and not no_upload:
        from compliance_api.storage.s3 import S3Storage

        storage = S3Storage()

    db = SessionLocal()
    try:
        with audit_run_lock(settings.redis_url, settings.audit_lock_timeout_seconds):
            records = AuditChainBuilder(db, storage=storage).run(start, _parse_date(period_end), exported_by="cli")
        click.echo(f"✓ {len(records)} audit record(s) appended for {start.isoformat()}.")
        for record in records:
            click.echo(f"  #{record.sequence} {record.project_id}::{record.regulation} {record.report_hash}")
    except (StorageError, ValidationError) as e:
        click.echo(f"✗ Audit export failed: {e}", err=True)
        raise SystemExit(1)
    finally:
        db.close()


@cli.command("verify-chain")
def verify_chain():
    """Recompute every audit record and report the first mismatch."""
    db = SessionLocal()
    try:
        result = AuditChainBuilder(db).verify()
    finally:
        db.close()
    click.echo(json.dumps(result, indent=2))
    if not result["valid"]:
        raise SystemExit(2)


@cli.command()
@click.argument("project_id")
@click.option("--days-ahead", type=int, default=None, help="Prediction horizon in days.")
@click.option("--dependency-chain-length", type=int, default=None)
@click.option("--team-workload", type=float, default=None)
def predict(project_id, days_ahead, dependency_chain_length, team_workload):
    """Run risk prediction for a project."""
    db = SessionLocal()
    try:
        result = RiskPredictionService(db).predict(
            project_id,
            days_ahead=days_ahead,
            dependency_chain_length=dependency_chain_length,
            team_workload=team_workload,
        )
    finally:
        db.close()
    click.echo(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    cli()
