#!/usr/bin/env python3
"""
CosmoInside Admin - Main Entry Point

Back-office for the cosmetics catalog: serves the admin panel and runs quick
catalog chores from the terminal.

Usage:
    python main.py --serve                     # Admin panel on :5001
    python main.py --stats                     # Catalog counts + latest products
    python main.py --review-queue              # Brands/ingredients awaiting review
    python main.py --health                    # Check configuration and backend
    python main.py --mark-brand-reviewed 5     # Clear brand 5's "new" flag
"""
import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from src.auth.guard import AccessGuard
from src.auth.session import AuthSession
from src.backend.supabase_client import AdminContext
from src.controllers.brands import BrandController
from src.controllers.dashboard import Dashboard
from src.controllers.ingredients import IngredientController
from src.errors import AdminError

console = Console()


class CustomHelpFormatter(argparse.RawDescriptionHelpFormatter):
    """Custom formatter that preserves formatting and adds width."""

    def __init__(self, prog):
        super().__init__(prog, max_help_position=40, width=100)


def build_parser() -> argparse.ArgumentParser:
    """Command line interface definition."""

    epilog = """
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
EXAMPLES
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  Panel:
    python main.py --serve                  Admin panel on http://localhost:5001
    python main.py --serve --port 8080      Custom port

  Catalog:
    python main.py --stats                  Counts, latest products, open bugs
    python main.py --review-queue           New brands and ingredients
    python main.py --mark-brand-reviewed 5  Mark brand 5 as reviewed

  Setup:
    python main.py --health                 Check .env and backend access

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
NOTES
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  • Requires .env file with SUPABASE_URL and SUPABASE_KEY
  • Catalog commands sign in as an admin: ADMIN_EMAIL / ADMIN_PASSWORD,
    or an interactive prompt when they are not set
"""

    parser = argparse.ArgumentParser(
        prog="python main.py",
        description="""
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
                         COSMOINSIDE ADMIN BACK-OFFICE
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
Manages the cosmetics catalog: brands, INCI ingredients, products with their
categories and tags, review queues and bug reports.
""",
        epilog=epilog,
        formatter_class=CustomHelpFormatter,
    )

    panel_group = parser.add_argument_group("Panel", "Run the admin panel")

    panel_group.add_argument(
        "--serve",
        action="store_true",
        help="Start the admin panel web server",
    )

    panel_group.add_argument(
        "--port",
        type=int,
        default=5001,
        metavar="PORT",
        help="Panel port (default: 5001)",
    )

    catalog_group = parser.add_argument_group(
        "Catalog", "Inspect and update the catalog (admin sign-in required)"
    )

    catalog_group.add_argument(
        "--stats",
        action="store_true",
        help="Show dashboard statistics and exit",
    )

    catalog_group.add_argument(
        "--review-queue",
        action="store_true",
        help="List brands and ingredients flagged as new",
    )

    catalog_group.add_argument(
        "--mark-brand-reviewed",
        type=int,
        metavar="ID",
        help="Clear the review flag of a brand",
    )

    catalog_group.add_argument(
        "--mark-ingredient-reviewed",
        type=int,
        metavar="ID",
        help="Clear the review flag of an ingredient",
    )

    setup_group = parser.add_argument_group("Setup", "Configuration checks")

    setup_group.add_argument(
        "--health",
        action="store_true",
        help="Check credentials and backend access",
    )

    return parser


def parse_args(argv: Optional[list[str]] = None):
    """Parse command line arguments."""
    return build_parser().parse_args(argv)


def sign_in(context: AdminContext) -> bool:
    """Sign in as an admin; True when the guard lets the session through."""
    email = os.getenv("ADMIN_EMAIL") or Prompt.ask("Admin email")
    password = os.getenv("ADMIN_PASSWORD") or Prompt.ask("Password", password=True)

    AuthSession(context, navigate=lambda route: None).sign_in(email, password)
    guard = AccessGuard(context, navigate=lambda route: None)
    guard.refresh()
    if not guard.allowed:
        console.print("[red]✗ This account has no admin access[/red]")
        return False
    return True


def show_health(context: AdminContext) -> int:
    console.print("\n[bold cyan]Backend Health[/bold cyan]\n")
    ok = True
    for check, passed, detail in context.check_health():
        status = "[green]✓[/green]" if passed else "[red]✗[/red]"
        console.print(f"  {status} {check:<20} [dim]{detail}[/dim]")
        ok = ok and passed
    return 0 if ok else 1


def show_stats(context: AdminContext) -> int:
    stats = asyncio.run(Dashboard(context).load())

    console.print("\n[bold cyan]Catalog Statistics[/bold cyan]\n")
    console.print(f"  Products:    [bold]{stats.products}[/bold]")
    console.print(f"  Brands:      [bold]{stats.brands}[/bold]")
    console.print(f"  Ingredients: [bold]{stats.ingredients}[/bold]")
    console.print(f"  To review:   [bold]{stats.review_total}[/bold]")
    console.print(f"  Open bugs:   [bold]{len(stats.open_bugs)}[/bold]")

    if stats.latest_products:
        table = Table(title="Latest products")
        table.add_column("ID", justify="right")
        table.add_column("Name")
        table.add_column("Brand")
        for product in stats.latest_products:
            table.add_row(str(product.id), product.name, product.brand_name or "-")
        console.print()
        console.print(table)

    for error in stats.errors:
        console.print(f"[yellow]{error}[/yellow]")
    return 1 if stats.errors else 0


def show_review_queue(context: AdminContext) -> int:
    stats = asyncio.run(Dashboard(context).load())

    table = Table(title=f"Review queue ({stats.review_total})")
    table.add_column("Type")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    for brand in stats.new_brands:
        table.add_row("brand", str(brand.id), brand.name)
    for ingredient in stats.new_ingredients:
        table.add_row("ingredient", str(ingredient.id), ingredient.inci_name)
    console.print(table)

    for error in stats.errors:
        console.print(f"[yellow]{error}[/yellow]")
    return 1 if stats.errors else 0


def mark_reviewed(context: AdminContext, kind: str, row_id: int) -> int:
    controller_cls = BrandController if kind == "brand" else IngredientController
    controller_cls(context).mark_reviewed(row_id)
    console.print(f"[green]✓ Marked {kind} {row_id} as reviewed[/green]")
    return 0


def serve(context: AdminContext, port: int) -> int:
    from panel import create_app

    app = create_app(context)
    console.print("\n[bold cyan]═══════════════════════════════════════════[/bold cyan]")
    console.print("[bold cyan]          COSMOINSIDE ADMIN PANEL          [/bold cyan]")
    console.print("[bold cyan]═══════════════════════════════════════════[/bold cyan]\n")
    console.print(f"  🌐  [underline cyan]http://localhost:{port}[/underline cyan]")
    console.print("[dim]Press CTRL+C to stop the server[/dim]\n")
    app.run(port=port)
    return 0


def main(argv: Optional[list[str]] = None, context: Optional[AdminContext] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        context = context or AdminContext.from_config()

        if args.health:
            return show_health(context)

        if args.serve:
            return serve(context, args.port)

        catalog_command = (
            args.stats
            or args.review_queue
            or args.mark_brand_reviewed is not None
            or args.mark_ingredient_reviewed is not None
        )
        if not catalog_command:
            build_parser().print_help()
            return 0

        if not sign_in(context):
            return 1

        if args.mark_brand_reviewed is not None:
            return mark_reviewed(context, "brand", args.mark_brand_reviewed)

        if args.mark_ingredient_reviewed is not None:
            return mark_reviewed(context, "ingredient", args.mark_ingredient_reviewed)

        if args.review_queue:
            return show_review_queue(context)

        return show_stats(context)

    except AdminError as e:
        console.print(f"\n[bold red]Error: {e}[/bold red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
