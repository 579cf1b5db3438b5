import asyncio

from rich import print
from sqlalchemy.exc import SQLAlchemyError
import typer

from identity_auth.core.db import AsyncSessionLocal, dispose_db, init_db
from identity_auth.core.exceptions.types import AppException

app = typer.Typer()


async def init_db_task() -> None:
    """
    Create every table registered on the declarative metadata.

    Idempotent: existing tables are left untouched.

    Raises:
        typer.Exit: If the database cannot be reached or the DDL fails.
    """
    print("[yellow]Creating database tables[/yellow]")
    try:
        await init_db()
        print("[green]Database tables created[/green]")
    except SQLAlchemyError as e:
        print(f"[red]Error creating tables:[/red] {str(e)}")
        raise typer.Exit(1)
    finally:
        await dispose_db()


async def cleanup_otps_task() -> None:
    from identity_auth.core.services.otp import OTPManager
    from identity_auth.infrastructure.scheduler.jobs import cleanup_expired_otps

    try:
        removed = await cleanup_expired_otps(
            OTPManager(session_factory=AsyncSessionLocal)
        )
        print(f"[green]Deleted {removed} expired OTP request(s)[/green]")
    except AppException as e:
        print(f"[red]Error cleaning up OTPs:[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        await dispose_db()


async def sweep_tokens_task() -> None:
    from identity_auth.core.services.tokens import TokenIssuer
    from identity_auth.infrastructure.scheduler.jobs import expire_partner_tokens

    try:
        expired = await expire_partner_tokens(
            TokenIssuer(session_factory=AsyncSessionLocal)
        )
        print(f"[green]Expired {expired} partner token(s)[/green]")
    except AppException as e:
        print(f"[red]Error sweeping tokens:[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        await dispose_db()


@app.command()
def initdb():
    """
    Creates the OTP, partner token, lock and audit log tables.

    Usage:
        python manage.py initdb
    """
    asyncio.run(init_db_task())


@app.command()
def cleanupotps():
    """Deletes every OTP request whose expiry has passed."""
    asyncio.run(cleanup_otps_task())


@app.command()
def sweeptokens():
    """Flips active partner tokens past their expiry to expired."""
    asyncio.run(sweep_tokens_task())


@app.command()
def runscheduler():
    """
    Runs the periodic sweep scheduler in the foreground until interrupted.
    """
    from identity_auth.infrastructure.scheduler.main import main

    print("[cyan]Starting scheduler (Ctrl+C to stop)[/cyan]")
    asyncio.run(main())


if __name__ == "__main__":
    app()
