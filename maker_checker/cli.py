"""Command line tools for operating the service."""

import click

from maker_checker.errors import ServiceError
from maker_checker.models.base import SessionLocal
from maker_checker.services.auth_service import AuthService
from maker_checker.services.notification_service import get_mailer


@click.group()
def cli():
    """Maker-Checker Control Service CLI."""
    pass


@cli.command("seed-superadmin")
@click.option("--email", required=True, help="Address of the superadmin account.")
@click.option("--first-name", required=True)
@click.option("--last-name", required=True)
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Only used when the account does not exist yet.",
)
def seed_superadmin(email, first_name, last_name, password):
    """Create the first superadmin, or promote an existing user."""
    db = SessionLocal()
    try:
        service = AuthService(db, get_mailer())
        user, created = service.seed_superadmin(email, first_name, last_name, password)
        db.commit()
        user_id = user.id
    except ServiceError as e:
        db.rollback()
        raise click.ClickException(e.user_message)
    finally:
        db.close()

    if created:
        click.echo(f"Superadmin {email} created (id {user_id}).")
    else:
        click.echo(f"User {email} promoted to superadmin (id {user_id}). Password unchanged.")
    for warning in service.warnings:
        click.echo(f"Warning: {warning}", err=True)


if __name__ == "__main__":
    cli()
