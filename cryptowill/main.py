from __future__ import annotations

import asyncio
import sys
from typing import Optional

import typer
from rich.console import Console

from cryptowill.clients.local_authority import LocalKeyring
from cryptowill.clients.memory import InMemoryRecordStore
from cryptowill.config import Settings, get_settings
from cryptowill.domain.outcomes import OperationOutcome
from cryptowill.factory import open_controller
from cryptowill.reporter import print_outcome, print_records, print_stats
from cryptowill.utils.logging import configure_logging
from cryptowill.views import compute_stats, filter_records, ordered, paginate

app = typer.Typer(help="CryptoWill: encrypted will records with verify-then-reveal execution.")
console = Console()

IdentityOption = typer.Option(
    None,
    "--identity",
    "-i",
    help="Acting account (defaults to WILL_IDENTITY).",
)


def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _identity(value: Optional[str]) -> Optional[str]:
    return value or get_settings().identity


def _require_persistent_store(settings: Settings) -> None:
    if settings.store_backend == "memory":
        console.print(
            "[red]The memory backend keeps wills only for one command.[/red] "
            "Set STORE_BACKEND=postgres, or run `cryptowill demo` for an in-memory walkthrough."
        )
        raise typer.Exit(code=2)


def _exit_on_failure(outcome: OperationOutcome) -> None:
    if not outcome.ok:
        raise typer.Exit(code=1)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"backend={settings.store_backend} context={settings.store_context} | "
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"identity={settings.identity or '-'} page_size={settings.page_size} "
        f"refresh_concurrency={settings.refresh_concurrency}"
    )


@app.command("list")
def list_records(
    identity: Optional[str] = IdentityOption,
    search: str = typer.Option("", "--search", "-s", help="Filter by title or beneficiary."),
    page: int = typer.Option(1, "--page", "-p", help="Page number (1-based)."),
) -> None:
    """
    Refresh from the store and list wills.
    """
    _setup()
    settings = get_settings()
    _require_persistent_store(settings)

    async def _run() -> OperationOutcome:
        async with open_controller(_identity(identity), settings) as controller:
            outcome = await controller.refresh_snapshot()
            if outcome.ok:
                records = filter_records(ordered(controller.get_snapshot().values()), search)
                print_records(paginate(records, page, settings.page_size), console)
            else:
                print_outcome(outcome, console)
            return outcome

    _exit_on_failure(asyncio.run(_run()))


@app.command()
def stats(identity: Optional[str] = IdentityOption) -> None:
    """
    Show dashboard statistics over all wills.
    """
    _setup()
    _require_persistent_store(get_settings())

    async def _run() -> OperationOutcome:
        async with open_controller(_identity(identity)) as controller:
            outcome = await controller.refresh_snapshot()
            if outcome.ok:
                print_stats(compute_stats(controller.get_snapshot().values()), console)
            else:
                print_outcome(outcome, console)
            return outcome

    _exit_on_failure(asyncio.run(_run()))


@app.command()
def create(
    title: str = typer.Option(..., "--title", "-t", help="Will title."),
    beneficiary: str = typer.Option(..., "--beneficiary", "-b", help="Beneficiary address."),
    amount: int = typer.Option(..., "--amount", "-a", min=0, help="Amount to encrypt."),
    public_aux_value: int = typer.Option(
        0, "--public-value", help="Public plaintext value kept for display/sorting."
    ),
    identity: Optional[str] = IdentityOption,
) -> None:
    """
    Encrypt an amount and register a new will.
    """
    _setup()
    _require_persistent_store(get_settings())

    async def _run() -> OperationOutcome:
        async with open_controller(_identity(identity)) as controller:
            outcome = await controller.create_record(
                title, beneficiary, amount, _identity(identity), public_aux_value
            )
            print_outcome(outcome, console)
            return outcome

    _exit_on_failure(asyncio.run(_run()))


@app.command()
def execute(
    record_id: str = typer.Argument(..., help="Identifier of the will to execute."),
    identity: Optional[str] = IdentityOption,
) -> None:
    """
    Verify and reveal a will's amount, finalizing it in the store.
    """
    _setup()
    _require_persistent_store(get_settings())

    async def _run() -> OperationOutcome:
        async with open_controller(_identity(identity)) as controller:
            refreshed = await controller.refresh_snapshot()
            if not refreshed.ok:
                print_outcome(refreshed, console)
                return refreshed
            outcome = await controller.execute_record(record_id, _identity(identity))
            print_outcome(outcome, console)
            return outcome

    _exit_on_failure(asyncio.run(_run()))


@app.command()
def demo(
    amount: int = typer.Option(5000, "--amount", "-a", min=0, help="Amount for the demo will."),
) -> None:
    """
    Run the full lifecycle against an in-memory store: two actors race to execute.
    """
    _setup()
    settings = get_settings()

    async def _run() -> None:
        keyring = LocalKeyring(settings.authority_secret)
        store = InMemoryRecordStore(
            settings.store_context,
            input_verifier=keyring.verify_input,
            decryption_verifier=keyring.verify_decryption,
        )
        alice, bob = "0xA11CE00000000000000000000000000000000001", "0xB0B0000000000000000000000000000000000002"
        async with open_controller(alice, settings, store=store) as first, open_controller(
            bob, settings, store=store
        ) as second:
            created = await first.create_record("House", "0xBEEF", amount, alice)
            print_outcome(created, console)
            if not created.ok or created.record_id is None:
                raise typer.Exit(code=1)
            await first.create_record("Savings", "0xCAFE", amount // 2, alice)
            await second.refresh_snapshot()

            record_id = created.record_id
            results = await asyncio.gather(
                first.execute_record(record_id, alice),
                second.execute_record(record_id, bob),
            )
            for outcome in results:
                print_outcome(outcome, console)

            records = ordered(first.get_snapshot().values())
            print_records(paginate(records, 1, settings.page_size), console)
            print_stats(compute_stats(records), console)

    asyncio.run(_run())


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
