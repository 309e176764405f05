"""Command-line interface for the referral ledger."""

from decimal import Decimal, InvalidOperation
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from referral_ledger.integrations.http import HttpCourseCatalog, HttpEnrollmentGateway
from referral_ledger.ledger.errors import ReferralError
from referral_ledger.ledger.service import ReferralService
from referral_ledger.logging_config import get_logger, setup_logging
from referral_ledger.storage.db import db

# Configure logging
setup_logging()
logger = get_logger(__name__)

# Create Typer app
app = typer.Typer(
    name="referral-ledger",
    help="Referral commission and reward ledger",
    no_args_is_help=True,
)

# Rich console for pretty output
console = Console()

# Ledger wired to the process-wide database and the HTTP collaborators
referral_service = ReferralService(
    courses=HttpCourseCatalog(),
    enrollments=HttpEnrollmentGateway(),
)


def _fail(error: ReferralError) -> None:
    console.print(f"[bold red]✗[/bold red] {error.message} [dim]({error.error_code})[/dim]")
    raise typer.Exit(code=1)


def _parse_amount(value: str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        raise typer.BadParameter(f"{value!r} is not a valid amount", param_hint="--amount")


@app.command("init")
def init_database() -> None:
    """Initialize the database and create tables."""
    console.print("[bold blue]Initializing database...[/bold blue]")
    db.create_tables()
    console.print("[bold green]✓[/bold green] Database initialized successfully")


@app.command("generate-code")
def generate_code(
    user_id: Annotated[int, typer.Argument(help="Referring user ID")],
    rate: Annotated[float | None, typer.Option("--rate", help="Commission rate in percent")] = None,
) -> None:
    """Create a referral account and code for a user."""
    try:
        account = referral_service.create_account(
            user_id,
            commission_rate=Decimal(str(rate)) if rate is not None else None,
        )
    except ReferralError as e:
        _fail(e)

    console.print(f"[bold green]✓[/bold green] Referral code: [bold]{account.code}[/bold]")
    console.print(f"  Commission rate: {account.commission_rate}%")


@app.command("apply-code")
def apply_code(
    code: Annotated[str, typer.Argument(help="Referral code")],
    user_id: Annotated[int, typer.Option("--user", "-u", help="Referred user ID")],
    course_id: Annotated[int | None, typer.Option("--course", "-c", help="Course ID")] = None,
    amount: Annotated[str | None, typer.Option("--amount", "-a", help="Purchase amount (looked up if omitted)")] = None,
) -> None:
    """Apply a referral code to a purchase."""
    try:
        applied = referral_service.apply_referral(
            code,
            referred_user_id=user_id,
            course_id=course_id,
            purchase_amount=_parse_amount(amount),
        )
    except ReferralError as e:
        _fail(e)

    console.print(f"[bold green]✓[/bold green] Referral recorded (transaction {applied.transaction_id})")
    console.print(f"  Discount: {applied.discount_amount}")
    console.print(f"  Final price: [bold]{applied.final_price}[/bold]")


@app.command("complete-referral")
def complete_referral(
    user_id: Annotated[int, typer.Argument(help="Referrer user ID")],
    transaction_id: Annotated[int, typer.Argument(help="Transaction ID")],
    enrollment_id: Annotated[str | None, typer.Option("--enrollment", help="Enrollment ID")] = None,
) -> None:
    """Confirm a pending referral after the purchase succeeded."""
    try:
        account = referral_service.complete_referral(user_id, transaction_id, enrollment_id=enrollment_id)
    except ReferralError as e:
        _fail(e)

    console.print(f"[bold green]✓[/bold green] Referral {transaction_id} completed")
    console.print(f"  Tier: [bold]{account.tier}[/bold]")
    console.print(f"  Total commission: {account.total_commission_earned}")


@app.command("cancel-referral")
def cancel_referral(
    user_id: Annotated[int, typer.Argument(help="Referrer user ID")],
    transaction_id: Annotated[int, typer.Argument(help="Transaction ID")],
) -> None:
    """Cancel a pending referral."""
    try:
        referral_service.cancel_referral(user_id, transaction_id)
    except ReferralError as e:
        _fail(e)

    console.print(f"[bold green]✓[/bold green] Referral {transaction_id} cancelled")


@app.command("stats")
def show_stats(
    user_id: Annotated[int, typer.Argument(help="Referrer user ID")],
) -> None:
    """Show referral statistics."""
    try:
        report = referral_service.get_statistics(user_id)
    except ReferralError as e:
        _fail(e)

    overall = report.overall
    title = f"Referral Statistics: {report.code} ({report.tier.value})"
    if report.display_name:
        title = f"{title} - {report.display_name}"
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total referrals", str(overall.total_referrals))
    table.add_row("Successful", str(overall.successful_referrals))
    table.add_row("Pending", str(overall.pending_referrals))
    table.add_row("Commission earned", str(overall.total_commission_earned))
    table.add_row("Discounts earned", str(overall.total_discounts_earned))
    table.add_row("Free courses earned", str(overall.total_free_courses_earned))
    console.print(table)

    if report.monthly:
        monthly = Table(title="By Month")
        monthly.add_column("Month")
        monthly.add_column("Referrals", justify="right")
        monthly.add_column("Commission", justify="right")
        for row in report.monthly:
            monthly.add_row(f"{row.year}-{row.month:02d}", str(row.count), str(row.commission))
        console.print(monthly)

    if report.top_courses:
        courses = Table(title="Top Courses")
        courses.add_column("Course", style="green")
        courses.add_column("Referrals", justify="right")
        courses.add_column("Commission", justify="right")
        for row in report.top_courses:
            courses.add_row(str(row.course_id), str(row.count), str(row.total_commission))
        console.print(courses)


@app.command("rewards")
def list_rewards(
    user_id: Annotated[int, typer.Argument(help="Referrer user ID")],
) -> None:
    """List rewards that can be redeemed now."""
    try:
        rewards = referral_service.list_available_rewards(user_id)
    except ReferralError as e:
        _fail(e)

    if not rewards:
        console.print("[yellow]No available rewards[/yellow]")
        return

    table = Table(title="Available Rewards")
    table.add_column("ID", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Value", justify="right")
    table.add_column("Course")
    table.add_column("Expires")

    for reward in rewards:
        table.add_row(
            str(reward.id),
            reward.type,
            str(reward.value),
            str(reward.course_id or "-"),
            reward.expiry_date.strftime("%Y-%m-%d") if reward.expiry_date else "never",
        )

    console.print(table)


@app.command("redeem")
def redeem_reward(
    user_id: Annotated[int, typer.Argument(help="Referrer user ID")],
    reward_id: Annotated[int, typer.Argument(help="Reward ID")],
) -> None:
    """Redeem a reward."""
    try:
        result = referral_service.redeem_reward(user_id, reward_id)
    except ReferralError as e:
        _fail(e)

    console.print(f"[bold green]✓[/bold green] Reward {reward_id} redeemed")
    for key, value in result.model_dump(mode="json").items():
        console.print(f"  {key}: {value}")


if __name__ == "__main__":
    app()
