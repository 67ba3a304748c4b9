"""Main entry point for the sourcer application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
import sys
from typing import Annotated, Any, Coroutine, Dict, Optional

import typer

# --- Core Layer ---
from sourcer.core.command_handler import CommandHandler
from sourcer.core.services.keyword_service import KeywordService
from sourcer.core.services.product_service import ProductService

# --- Domain Layer ---
from sourcer.domain.interfaces.transport import HttpTransport
from sourcer.domain.models.errors import ConfigurationValueError

# --- Infrastructure Layer ---
from sourcer.infrastructure.config.client_config import ClientConfig
from sourcer.infrastructure.config.settings import load_configuration, get_config, build_client_config
from sourcer.infrastructure.cli.display import ConsoleDisplay
from sourcer.infrastructure.resilience.request_executor import RequestExecutor
from sourcer.infrastructure.monitoring.logger_setup import setup_logging, resolve_log_level, DEFAULT_LOG_FORMAT

logger = logging.getLogger(__name__)

# --- Dependency Injection Container (Manual) ---

def create_dependencies(
    config: Optional[ClientConfig] = None,
    transport: Optional[HttpTransport] = None,
) -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root. Each call builds a fresh executor with
    its own rate window and cache.
    """
    dependencies: Dict[str, Any] = {}
    if config is None:
        load_configuration()
        setup_logging(
            log_level=resolve_log_level(get_config('logging.level', 'INFO')),
            log_format=get_config('logging.format', DEFAULT_LOG_FORMAT),
            log_file=get_config('logging.file'),
        )
        config = build_client_config()
    dependencies['config'] = config
    dependencies['ui'] = ConsoleDisplay()
    dependencies['executor'] = RequestExecutor.from_config(config, transport=transport)
    dependencies['keyword_service'] = KeywordService(dependencies['executor'])
    dependencies['product_service'] = ProductService(dependencies['executor'])
    dependencies['command_handler'] = CommandHandler(
        keyword_service=dependencies['keyword_service'],
        product_service=dependencies['product_service'],
        executor=dependencies['executor'],
        config=config,
        ui=dependencies['ui'],
    )
    logger.info("All dependencies initialized successfully.")
    return dependencies

# Built on first command so importing this module has no side effects
_dependencies: Optional[Dict[str, Any]] = None

def get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        try:
            _dependencies = create_dependencies()
        except (ConfigurationValueError, OSError) as e:
            logger.error(f"Fatal Error during application initialization: {e}", exc_info=True)
            print(f"FATAL ERROR during initialization: {e}", file=sys.stderr)
            raise typer.Exit(code=2)
    return _dependencies

# --- Typer App Definition ---
app = typer.Typer(
    name="sourcer",
    help="sourcer: marketplace keyword and product lookups through a signed, rate-limited, cached API client.",
    add_completion=False,
)
keywords_app = typer.Typer(help="Keyword lookups.")
products_app = typer.Typer(help="Product lookups.")
cache_app = typer.Typer(help="Response cache maintenance.")
app.add_typer(keywords_app, name="keywords")
app.add_typer(products_app, name="products")
app.add_typer(cache_app, name="cache")

# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, bool]) -> None:
    """Runs a handler coroutine, closes the client, maps failure to exit code 1."""
    executor: RequestExecutor = get_dependencies()['executor']

    async def _run() -> bool:
        try:
            return await coro
        finally:
            await executor.close()

    if not asyncio.run(_run()):
        raise typer.Exit(code=1)

def _handler() -> CommandHandler:
    return get_dependencies()['command_handler']

# --- CLI Commands ---

LimitOption = Annotated[int, typer.Option("--limit", "-l", min=1, help="Number of results.")]
PageOption = Annotated[int, typer.Option("--page", min=1, help="Result page.")]

@keywords_app.command("search")
def keywords_search(keyword: Annotated[str, typer.Argument(help="Keyword to look up.")]):
    """Search volume and metrics for a keyword."""
    run_async(_handler().handle_keyword_search(keyword))

@keywords_app.command("related")
def keywords_related(keyword: Annotated[str, typer.Argument(help="Seed keyword.")]):
    """Keywords related to a seed keyword."""
    run_async(_handler().handle_keyword_related(keyword))

@keywords_app.command("trends")
def keywords_trends(
    keyword: Annotated[str, typer.Argument(help="Keyword to chart.")],
    start_date: Annotated[Optional[str], typer.Option("--from", help="Start date (YYYY-MM-DD). Defaults to 30 days ago.")] = None,
    end_date: Annotated[Optional[str], typer.Option("--to", help="End date (YYYY-MM-DD). Defaults to today.")] = None,
):
    """Search volume trend for a keyword."""
    run_async(_handler().handle_keyword_trends(keyword, start_date, end_date))

@keywords_app.command("competition")
def keywords_competition(keyword: Annotated[str, typer.Argument(help="Keyword to assess.")]):
    """Competition information for a keyword."""
    run_async(_handler().handle_keyword_competition(keyword))

@products_app.command("search")
def products_search(
    keyword: Annotated[str, typer.Argument(help="Search query.")],
    limit: LimitOption = 20,
    page: PageOption = 1,
    sort: Annotated[str, typer.Option("--sort", help="Sort type, e.g. RELEVANCE, BEST_SELLING.")] = "RELEVANCE",
):
    """Search products by keyword."""
    run_async(_handler().handle_product_search(keyword, limit, page, sort.upper()))

@products_app.command("show")
def products_show(product_id: Annotated[str, typer.Argument(help="Product ID.")]):
    """Product detail."""
    run_async(_handler().handle_product_show(product_id))

@products_app.command("reviews")
def products_reviews(
    product_id: Annotated[str, typer.Argument(help="Product ID.")],
    limit: LimitOption = 20,
    page: PageOption = 1,
):
    """Recent reviews for a product."""
    run_async(_handler().handle_product_reviews(product_id, limit, page))

@cache_app.command("clear")
def cache_clear():
    """Drops every cached API response."""
    run_async(_handler().handle_cache_clear())

@cache_app.command("sweep")
def cache_sweep():
    """Removes expired cache entries."""
    run_async(_handler().handle_cache_sweep())

@app.command("status")
def status():
    """Shows the effective client configuration and limiter state."""
    run_async(_handler().handle_status())

# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()

if __name__ == "__main__":
    cli_entry_point()
