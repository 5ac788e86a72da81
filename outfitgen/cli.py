"""
outfitgen CLI

Command-line interface for generating outfit images in-process and for
running the API server.

Usage:
    outfitgen generate TOP BOTTOM   - Compose an outfit onto the body image
    outfitgen occasion "wedding"    - Dress the body image for an occasion
    outfitgen transfer IMAGE        - Transfer an outfit onto the body image
    outfitgen serve                 - Start the API server
"""
import asyncio
import base64
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from outfitgen import __version__
from outfitgen.config import get_settings
from outfitgen.core.orchestrator import OutfitOrchestrator
from outfitgen.core.requests import (
    build_occasion_request,
    build_outfit_request,
    build_transfer_request,
)
from outfitgen.core.types import DEFAULT_BODY_PATH, GenerationRequest, GenerationResult

# Load environment variables
load_dotenv()

console = Console()


def build_cli_orchestrator() -> OutfitOrchestrator:
    """Build a memory-only orchestrator, exiting with a hint if unconfigured."""
    try:
        settings = get_settings()
    except ValidationError as e:
        console.print("[red]✗ Configuration invalid[/red]")
        console.print(f"\n{e}")
        console.print("\nSet GEMINI_API_KEY or OPENAI_API_KEY in .env:")
        console.print("[yellow]echo \"GEMINI_API_KEY=your_key_here\" >> .env[/yellow]")
        sys.exit(1)
    return OutfitOrchestrator.from_settings(settings)


def save_image(image_ref: str, output: Path) -> bool:
    """Write a data URL image to disk. Returns False for non-data references."""
    if not image_ref.startswith("data:"):
        return False
    _, _, payload = image_ref.partition(",")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(base64.b64decode(payload))
    return True


def render_result(result: GenerationResult, output: Path) -> None:
    table = Table(title="Generation Result", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Success", "[green]yes[/green]" if result.success else "[red]no[/red]")
    if result.degraded:
        table.add_row("Mode", "[yellow]composite (AI generation unavailable)[/yellow]")
    if result.cached:
        table.add_row("Cached", "yes")
    if result.error:
        table.add_row("Error", result.error)
    if result.error_kind:
        table.add_row("Error kind", result.error_kind.value)
    if result.retry_after_seconds:
        table.add_row("Retry after", f"{result.retry_after_seconds:.0f}s")
    if result.image_ref:
        if save_image(result.image_ref, output):
            table.add_row("Saved to", str(output))
        else:
            table.add_row("Image", result.image_ref)

    console.print(table)


async def _run(request: GenerationRequest) -> GenerationResult:
    orchestrator = build_cli_orchestrator()
    try:
        return await orchestrator.generate(request)
    finally:
        await orchestrator.close()


def run_generation(request: GenerationRequest, output: Path) -> None:
    with console.status("[bold green]Generating outfit...", spinner="dots"):
        result = asyncio.run(_run(request))
    render_result(result, output)
    if not result.success:
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="outfitgen")
def main():
    """
    outfitgen - compose clothing images into a single outfit photo.
    """
    pass


@main.command()
@click.argument("top", type=click.Path(exists=True, dir_okay=False))
@click.argument("bottom", type=click.Path(exists=True, dir_okay=False))
@click.option("--shoes", type=click.Path(exists=True, dir_okay=False), help="Shoes image")
@click.option("--body", default=DEFAULT_BODY_PATH, show_default=True, help="Body model image")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=Path("outfit.png"), show_default=True)
def generate(top: str, bottom: str, shoes: str | None, body: str, output: Path):
    """
    Compose a top and bottom (and optional shoes) onto the body image.

    Example:
        outfitgen generate tops/1.png bottoms/7.png --shoes shoes/2.png
    """
    request = build_outfit_request(top, bottom, body=body, shoes=shoes)
    run_generation(request, output)


@main.command()
@click.argument("occasion")
@click.option("--body", default=DEFAULT_BODY_PATH, show_default=True, help="Body model image")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=Path("outfit.png"), show_default=True)
def occasion(occasion: str, body: str, output: Path):
    """
    Dress the body image for an occasion.

    Example:
        outfitgen occasion "summer garden wedding"
    """
    try:
        request = build_occasion_request(occasion, body=body)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="OCCASION") from e
    run_generation(request, output)


@main.command()
@click.argument("inspiration", type=click.Path(exists=True, dir_okay=False))
@click.option("--body", default=DEFAULT_BODY_PATH, show_default=True, help="Body model image")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=Path("outfit.png"), show_default=True)
def transfer(inspiration: str, body: str, output: Path):
    """
    Transfer the outfit worn in INSPIRATION onto the body image.

    Example:
        outfitgen transfer street-style.jpg
    """
    run_generation(build_transfer_request(inspiration, body=body), output)


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, help="Port to run server on")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: str, port: int, reload: bool):
    """
    Start the API server.

    Example:
        outfitgen serve --port 8080
    """
    import uvicorn

    console.print(f"[green]✓ Starting outfitgen API on http://{host}:{port}[/green]")
    uvicorn.run("outfitgen.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
