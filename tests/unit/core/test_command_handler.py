import pytest
from unittest.mock import AsyncMock, MagicMock

from sourcer.core.command_handler import CommandHandler
from sourcer.core.services.keyword_service import KeywordService
from sourcer.core.services.product_service import ProductService
from sourcer.domain.interfaces.user_interface import UserInterface
from sourcer.domain.models.api import ApiResponse, Credentials
from sourcer.infrastructure.config.client_config import CacheConfig, ClientConfig

pytestmark = pytest.mark.asyncio

OK = ApiResponse.ok(data={"keyword": "tent", "volume": 100})
FAILED = ApiResponse.error("500", "A network error occurred.")


@pytest.fixture
def mock_keyword_service():
    service = MagicMock(spec=KeywordService)
    for name in ("search", "related", "trends", "competition"):
        setattr(service, name, AsyncMock(return_value=OK))
    return service


@pytest.fixture
def mock_product_service():
    service = MagicMock(spec=ProductService)
    for name in ("search", "get_product", "reviews"):
        setattr(service, name, AsyncMock(return_value=OK))
    return service


@pytest.fixture
def mock_ui():
    return MagicMock(spec=UserInterface)


@pytest.fixture
def command_handler(mock_keyword_service, mock_product_service, mock_ui, make_executor, client_config):
    """Fixture to create CommandHandler with mocked services and a real executor on a fake transport."""
    return CommandHandler(
        keyword_service=mock_keyword_service,
        product_service=mock_product_service,
        executor=make_executor(),
        config=client_config,
        ui=mock_ui,
    )


async def test_keyword_search(command_handler: CommandHandler, mock_keyword_service, mock_ui):
    assert await command_handler.handle_keyword_search("tent") is True
    mock_keyword_service.search.assert_awaited_once_with("tent")
    mock_ui.display_response.assert_called_once_with(OK, title="Keyword: tent")


async def test_keyword_failure_returns_false(command_handler: CommandHandler, mock_keyword_service, mock_ui):
    mock_keyword_service.related.return_value = FAILED
    assert await command_handler.handle_keyword_related("tent") is False
    mock_ui.display_response.assert_called_once_with(FAILED, title="Related to: tent")


async def test_keyword_trends_and_competition(command_handler: CommandHandler, mock_keyword_service):
    await command_handler.handle_keyword_trends("tent", "2024-01-01", None)
    await command_handler.handle_keyword_competition("tent")
    mock_keyword_service.trends.assert_awaited_once_with("tent", start_date="2024-01-01", end_date=None)
    mock_keyword_service.competition.assert_awaited_once_with("tent")


async def test_product_commands(command_handler: CommandHandler, mock_product_service):
    assert await command_handler.handle_product_search("tent", 5, 2, "BEST_SELLING")
    assert await command_handler.handle_product_show("123")
    assert await command_handler.handle_product_reviews("123", 10, 1)
    mock_product_service.search.assert_awaited_once_with("tent", limit=5, page=2, sort="BEST_SELLING")
    mock_product_service.get_product.assert_awaited_once_with("123")
    mock_product_service.reviews.assert_awaited_once_with("123", limit=10, page=1)


async def test_cache_clear_and_sweep(command_handler: CommandHandler, mock_ui):
    executor = command_handler.executor
    await executor.request("GET", "/v2/keywords/search")
    assert await executor.cache.store.size() == 1

    assert await command_handler.handle_cache_clear()
    assert await executor.cache.store.size() == 0
    mock_ui.display_info.assert_called_with("Response cache cleared.")

    assert await command_handler.handle_cache_sweep()
    mock_ui.display_info.assert_called_with("Removed 0 expired cache entries.")


async def test_cache_commands_when_disabled(command_handler: CommandHandler, mock_ui, make_executor):
    command_handler.executor = make_executor(cache=None)
    assert await command_handler.handle_cache_clear()
    assert await command_handler.handle_cache_sweep()
    assert mock_ui.display_warning.call_count == 2


async def test_status(command_handler: CommandHandler, mock_ui):
    assert await command_handler.handle_status() is True
    status = mock_ui.display_status.call_args.args[0]
    assert status["Credentials configured"] is True
    assert status["Access key"] == "test-access"
    assert status["Rate limit"] == "100/100 left in 60s window"
    assert status["Cached entries"] == 0
    mock_ui.display_warning.assert_not_called()


async def test_status_without_credentials(mock_keyword_service, mock_product_service, mock_ui, make_executor):
    config = ClientConfig(credentials=Credentials(), cache=CacheConfig(enabled=False))
    handler = CommandHandler(mock_keyword_service, mock_product_service, make_executor(cache=None), config, mock_ui)
    assert await handler.handle_status() is False
    status = mock_ui.display_status.call_args.args[0]
    assert status["Cache"] == "disabled"
    assert "Cached entries" not in status
    mock_ui.display_warning.assert_called_once()
