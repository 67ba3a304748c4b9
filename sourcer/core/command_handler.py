"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work
to the keyword/product services or the client itself, and renders the
resulting ApiResponse through the UserInterface.
"""

import logging
from typing import Any, Dict, Optional

from sourcer.core.services.keyword_service import KeywordService
from sourcer.core.services.product_service import ProductService
from sourcer.domain.interfaces.user_interface import UserInterface
from sourcer.domain.models.api import ApiResponse
from sourcer.infrastructure.config.client_config import ClientConfig
from sourcer.infrastructure.resilience.request_executor import RequestExecutor

logger = logging.getLogger(__name__)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services.

    Every `handle_*` coroutine returns True when the command succeeded, so the
    entry point can map it onto an exit code.
    """

    def __init__(
        self,
        keyword_service: KeywordService,
        product_service: ProductService,
        executor: RequestExecutor,
        config: ClientConfig,
        ui: UserInterface,
    ):
        self.keyword_service = keyword_service
        self.product_service = product_service
        self.executor = executor
        self.config = config
        self.ui = ui

    def _show(self, response: ApiResponse, title: str) -> bool:
        self.ui.display_response(response, title=title)
        return response.success

    # --- Keywords ---

    async def handle_keyword_search(self, keyword: str) -> bool:
        return self._show(await self.keyword_service.search(keyword), f"Keyword: {keyword}")

    async def handle_keyword_related(self, keyword: str) -> bool:
        return self._show(await self.keyword_service.related(keyword), f"Related to: {keyword}")

    async def handle_keyword_trends(self, keyword: str, start_date: Optional[str], end_date: Optional[str]) -> bool:
        response = await self.keyword_service.trends(keyword, start_date=start_date, end_date=end_date)
        return self._show(response, f"Trends: {keyword}")

    async def handle_keyword_competition(self, keyword: str) -> bool:
        return self._show(await self.keyword_service.competition(keyword), f"Competition: {keyword}")

    # --- Products ---

    async def handle_product_search(self, keyword: str, limit: int, page: int, sort: str) -> bool:
        response = await self.product_service.search(keyword, limit=limit, page=page, sort=sort)
        return self._show(response, f"Products: {keyword}")

    async def handle_product_show(self, product_id: str) -> bool:
        return self._show(await self.product_service.get_product(product_id), f"Product {product_id}")

    async def handle_product_reviews(self, product_id: str, limit: int, page: int) -> bool:
        response = await self.product_service.reviews(product_id, limit=limit, page=page)
        return self._show(response, f"Reviews: {product_id}")

    # --- Maintenance ---

    async def handle_cache_clear(self) -> bool:
        if not self.executor.cache_enabled:
            self.ui.display_warning("Response cache is disabled; nothing to clear.")
            return True
        await self.executor.clear_cache()
        self.ui.display_info("Response cache cleared.")
        return True

    async def handle_cache_sweep(self) -> bool:
        if not self.executor.cache_enabled:
            self.ui.display_warning("Response cache is disabled; nothing to sweep.")
            return True
        removed = await self.executor.cache.sweep_expired()
        self.ui.display_info(f"Removed {removed} expired cache entries.")
        return True

    async def handle_status(self) -> bool:
        status: Dict[str, Any] = {
            "Base URL": self.config.base_url,
            "Credentials configured": self.config.credentials.is_configured(),
            "Access key": self.config.credentials.access_key or "-",
            "Retry": f"{self.config.retry.max_attempts} attempts, {self.config.retry.delay_ms:.0f}ms x{self.config.retry.multiplier}",
            "Cache": f"{self.config.cache.backend}, ttl {self.config.cache.ttl_seconds}s" if self.config.cache.enabled else "disabled",
        }
        limiter = self.executor.rate_limiter
        if limiter is not None and limiter.enabled:
            status["Rate limit"] = f"{await limiter.remaining()}/{limiter.max_requests} left in {limiter.time_window:g}s window"
        else:
            status["Rate limit"] = "disabled"
        if self.executor.cache_enabled:
            status["Cached entries"] = await self.executor.cache.store.size()
        self.ui.display_status(status, title="sourcer status")
        if not self.config.credentials.is_configured():
            self.ui.display_warning("Set SOURCER_CREDENTIALS_ACCESS_KEY / SOURCER_CREDENTIALS_SECRET_KEY (or COUPANG_ACCESS_KEY / COUPANG_SECRET_KEY).")
            return False
        return True
