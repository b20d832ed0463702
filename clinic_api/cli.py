"""CLI tools for clinic administration."""

import click

from clinic_api.db.enums import Role
from clinic_api.db.models import User
from clinic_api.db.session import SessionLocal


@click.group()
def cli():
    """Clinic CLI tools."""
    pass


def _create_user(
    db,
    email: str,
    name: str,
    role: Role,
    specialization: str | None = None,
    bio: str | None = None,
) -> User | None:
    email = email.lower().strip()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        click.echo(f"❌ User already exists: {email} ({existing.role})")
        return None

    user = User(
        email=email,
        display_name=name,
        role=role.value,
        specialization=specialization if role == Role.PROVIDER else None,
        bio=bio if role == Role.PROVIDER else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@cli.command()
@click.option("--email", required=True, help="Admin email address")
@click.option("--name", default="Clinic Admin", help="Display name")
def seed_admin(email: str, name: str):
    """
    Create the initial administrator account.

    Example:
        python -m clinic_api.cli seed-admin --email "admin@clinic.example"
    """
    db = SessionLocal()
    try:
        user = _create_user(db, email, name, Role.ADMIN)
        if user:
            click.echo(f"✓ Created admin: {user.email}")
            click.echo(f"  ID: {user.id}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email address")
@click.option("--name", required=True, help="Display name")
@click.option(
    "--role",
    type=click.Choice([r.value for r in Role]),
    default=Role.CLIENT.value,
    show_default=True,
)
@click.option("--specialization", default=None, help="Provider specialization")
@click.option("--bio", default=None, help="Provider bio shown to clients")
def create_user(email: str, name: str, role: str, specialization: str | None, bio: str | None):
    """
    Create a client, provider, or admin account.

    Example:
        python -m clinic_api.cli create-user --email "vet@clinic.example" \\
            --name "Dr. Rivera" --role provider --specialization "Surgery"
    """
    db = SessionLocal()
    try:
        user = _create_user(db, email, name, Role(role), specialization, bio)
        if user:
            click.echo(f"✓ Created {user.role}: {user.email}")
            click.echo(f"  ID: {user.id}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to issue a session token for")
def issue_token(email: str):
    """
    Print a session token for a user (send as the x-auth-token header).

    Example:
        python -m clinic_api.cli issue-token --email "client@example.com"
    """
    from clinic_api.core.security import create_session_token

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.lower().strip()).first()
        if not user:
            click.echo(f"❌ User not found: {email}")
            return
        if not user.is_active:
            click.echo(f"❌ User is disabled: {email}")
            return
        click.echo(create_session_token(user.id, user.role, user.token_version))
    finally:
        db.close()


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        python -m clinic_api.cli revoke-sessions --email "user@example.com"
    """
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email.lower().strip()).first()
        if not user:
            click.echo(f"❌ User not found: {email}")
            return

        old_version = user.token_version
        user.token_version += 1
        db.commit()

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
def recover_reminders():
    """
    List the reminders the service would re-arm on startup.

    Timers live inside the API process, so this command only reports what
    recovery would do. Restart the API to actually re-arm them.
    """
    from clinic_api.services import recovery_service
    from clinic_api.services.reminder_scheduler import ReminderScheduler

    reminders = ReminderScheduler(SessionLocal)
    db = SessionLocal()
    try:
        due = recovery_service.pending_reminders(db, reminders)
        if not due:
            click.echo("No pending reminders")
            return

        for appointment, fire_at in due:
            click.echo(
                f"  {appointment.id}  {appointment.appointment_date} {appointment.slot_time}"
                f"  → fires {fire_at.isoformat()}"
            )
        click.echo(f"✓ {len(due)} reminder(s) would be armed")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
