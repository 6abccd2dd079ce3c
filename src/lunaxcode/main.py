"""
Lunaxcode - CLI Entry Point.

Usage:
    lunaxcode serve              Run the API server
    lunaxcode steps              Show the onboarding steps
    lunaxcode health             Check configuration
    lunaxcode --help             Show help
"""

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="lunaxcode",
    help="Lunaxcode - Project onboarding backend.",
    add_completion=False,
)
console = Console()


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes (dev only)"),
) -> None:
    """Run the onboarding API with uvicorn."""
    import uvicorn

    from lunaxcode.config import get_settings
    from lunaxcode.logging_config import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level)
    console.print(f"[bold green]Lunaxcode API[/bold green] on http://{host}:{port} ({settings.app_env})")
    uvicorn.run("lunaxcode.web.app:app", host=host, port=port, reload=reload)


@app.command()
def steps(
    service_type: str = typer.Option(None, "--service-type", "-s", help="landing_page, web_app or mobile_app"),
) -> None:
    """List the onboarding steps for a service type."""
    from onboarding.state import ServiceType
    from onboarding.steps import DEFAULT_CATALOG

    try:
        selected = ServiceType(service_type) if service_type else None
    except ValueError:
        valid = ", ".join(t.value for t in ServiceType)
        console.print(f"[red]Unknown service type: {service_type}. Expected one of: {valid}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Onboarding steps ({selected.value if selected else 'any service'})")
    table.add_column("#", justify="right")
    table.add_column("Step", no_wrap=True)
    table.add_column("Title")
    table.add_column("Weight", justify="right")
    table.add_column("Back")
    table.add_column("Required")

    for config in DEFAULT_CATALOG.steps_for(selected):
        table.add_row(
            str(config.step_number),
            config.step_name.value,
            config.title,
            str(config.progress_weight),
            "yes" if config.back_allowed else "no",
            "yes" if config.is_required else "no",
        )

    console.print(table)
    console.print(f"[dim]Total weight: {DEFAULT_CATALOG.total_weight(selected)}[/dim]")


@app.command()
def health() -> None:
    """Check system health and configuration."""
    from lunaxcode.config import get_settings

    console.print("\n[bold]Lunaxcode Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("✅ Configuration loaded")
        console.print(f"   Environment: {settings.app_env}")
        console.print(f"   Log level: {settings.log_level}")
        console.print(f"   Submission storage: {settings.onboarding_storage}")

        if settings.supabase_configured:
            console.print("✅ Supabase configured")
        elif settings.onboarding_storage == "supabase":
            console.print("❌ Supabase storage selected but SUPABASE_URL or keys are missing")
            raise typer.Exit(1)
        else:
            console.print("ℹ️  Supabase not configured (in-memory storage)")

        console.print(f"   Catalog API: {settings.catalog_api_base_url}")
        console.print("\n[green]All checks passed![/green]")

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"\n[red]❌ Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from lunaxcode import __version__

    console.print(f"Lunaxcode version {__version__}")


if __name__ == "__main__":
    app()
