"""CLI commands for Mentra.

Commands:
- init-db: Create the database schema and seed data
- serve: Run the Web API with uvicorn
- create-user: Add a student, teacher, parent or admin
- assign-teacher / link-parent: Relationships between users
- profile: Refresh and show a student's performance profile
- deliver-due: Send scheduled notifications whose time has come
- cleanup: Delete old notifications and expired analytics cache
"""

import asyncio
import os
import sqlite3
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from mentra.config import load_app_config
from mentra.config.logging_setup import configure_logging
from mentra.core import difficulty
from mentra.db import analytics_repository, notifications_repository, users_repository
from mentra.db.database import get_db_path, init_db
from mentra.db.users_repository import ROLES
from mentra.notifications.service import get_notification_service
from mentra.web.auth import hash_password

app = typer.Typer(
    name="mentra",
    help="Reflective learning platform: journal, scaffolded problems, dashboards.",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    db_path: str | None = typer.Option(None, "--db", help="Database file (default from config)"),
) -> None:
    """Configure logging and open the database."""
    config = load_app_config()
    configure_logging(config.logging)
    init_db(Path(db_path or config.database.path))


def _get_user_or_exit(user_id: str, role: str) -> users_repository.UserRecord:
    user = users_repository.get_user_by_id(user_id) or users_repository.get_user_by_email(user_id)
    if user is None:
        console.print(f"[red]✗ User not found: {user_id}[/red]")
        raise typer.Exit(code=1)
    if user.role != role:
        console.print(f"[red]✗ {user.email} is a {user.role}, expected {role}[/red]")
        raise typer.Exit(code=1)
    return user


@app.command(name="init-db")
def init_db_command() -> None:
    """Create tables, indexes, triggers and seed data."""
    console.print(f"[green]✓ Database ready:[/green] {get_db_path()}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the Web API."""
    import uvicorn

    # Reload workers are fresh processes that only see the environment
    os.environ["MENTRA_DB_PATH"] = str(get_db_path())
    console.print(f"[blue]Serving Mentra API on http://{host}:{port}[/blue]")
    uvicorn.run("mentra.web.api:app", host=host, port=port, reload=reload)


@app.command(name="create-user")
def create_user(
    email: str = typer.Argument(..., help="Login e-mail"),
    first_name: str = typer.Option(..., "--first-name", "-f", help="First name"),
    last_name: str = typer.Option("", "--last-name", "-l", help="Last name"),
    role: str = typer.Option("student", "--role", "-r", help="student, teacher, parent or admin"),
    grade_level: int | None = typer.Option(None, "--grade", "-g", help="Grade level (students)"),
    password: str = typer.Option(
        ..., "--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Password"
    ),
) -> None:
    """Add a user."""
    if role not in ROLES:
        console.print(f"[red]✗ Unknown role: {role}[/red] (choose from {', '.join(ROLES)})")
        raise typer.Exit(code=1)
    if len(password) < 8:
        console.print("[red]✗ Password must be at least 8 characters[/red]")
        raise typer.Exit(code=1)

    try:
        user = users_repository.create_user(
            email=email,
            password_hash=hash_password(password),
            role=role,
            first_name=first_name,
            last_name=last_name,
            grade_level=grade_level,
        )
    except sqlite3.IntegrityError:
        console.print(f"[yellow]⚠ Email already registered: {email}[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[green]✓ Created {role}[/green] {user.full_name}")
    console.print(f"  [dim]id:[/dim] {user.id}")


@app.command(name="assign-teacher")
def assign_teacher(
    teacher: str = typer.Argument(..., help="Teacher ID or e-mail"),
    student: str = typer.Argument(..., help="Student ID or e-mail"),
    subject: str | None = typer.Option(None, "--subject", "-s", help="Subject taught"),
) -> None:
    """Assign a student to a teacher."""
    teacher_user = _get_user_or_exit(teacher, "teacher")
    student_user = _get_user_or_exit(student, "student")
    users_repository.assign_student_to_teacher(teacher_user.id, student_user.id, subject)
    console.print(f"[green]✓ {student_user.full_name} assigned to {teacher_user.full_name}[/green]")


@app.command(name="link-parent")
def link_parent(
    parent: str = typer.Argument(..., help="Parent ID or e-mail"),
    child: str = typer.Argument(..., help="Student ID or e-mail"),
    relationship: str = typer.Option("parent", "--relationship", help="mother, father, guardian, ..."),
) -> None:
    """Link a parent to a child."""
    parent_user = _get_user_or_exit(parent, "parent")
    child_user = _get_user_or_exit(child, "student")
    users_repository.link_parent_to_child(parent_user.id, child_user.id, relationship)
    console.print(f"[green]✓ {parent_user.full_name} linked to {child_user.full_name}[/green]")


@app.command()
def profile(
    student: str = typer.Argument(..., help="Student ID or e-mail"),
    subject: str = typer.Option("general", "--subject", "-s", help="Subject"),
) -> None:
    """Refresh a student's performance profile and show the recommendation."""
    student_user = _get_user_or_exit(student, "student")
    perf = difficulty.update_student_performance_profile(student_user.id, subject)
    recommended = difficulty.recommend_optimal_difficulty(student_user.id, subject)

    if perf is None:
        console.print(f"[yellow]⚠ No completed sessions for {student_user.full_name} in {subject}[/yellow]")
        console.print(f"  [dim]recommended:[/dim] {recommended}")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Bucket")
    table.add_column("Performance", justify="right")
    for bucket in ("easy", "medium", "hard", "very_hard"):
        value = getattr(perf, f"{bucket}_performance")
        table.add_row(bucket, "-" if value is None else f"{value:.2f}")

    console.print(f"[bold]{student_user.full_name}[/bold] · {subject}")
    console.print(table)
    console.print(f"  [dim]overall:[/dim]     {perf.overall_performance:.2f}")
    console.print(f"  [dim]consistency:[/dim] {perf.consistency_score:.2f}")
    console.print(f"  [dim]confidence:[/dim]  {perf.profile_confidence:.2f} ({perf.sessions_analyzed} sessions)")
    console.print(f"  [green]recommended:[/green] {recommended}")


@app.command(name="deliver-due")
def deliver_due(
    limit: int = typer.Option(100, "--limit", "-n", help="Maximum notifications to send"),
) -> None:
    """Send pending notifications whose scheduled time has come."""
    delivered = asyncio.run(get_notification_service().deliver_due(limit))
    console.print(f"[green]✓ Delivered {delivered} notification(s)[/green]")


@app.command()
def cleanup() -> None:
    """Delete expired and old notifications plus expired analytics cache."""
    retention = load_app_config().notifications
    removed = notifications_repository.cleanup_old_notifications(
        retention.read_retention_days, retention.dismissed_retention_days
    )
    purged = analytics_repository.purge_expired_analytics()
    console.print(f"[green]✓ Removed {removed} notification(s)[/green]")
    console.print(f"  [dim]analytics cache entries purged:[/dim] {purged}")
