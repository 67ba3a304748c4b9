"""Core service for keyword lookups against the marketplace API.

Thin use-case layer: builds the parameters for each keyword endpoint and
hands the call to the ApiClient. Results come back as ApiResponse envelopes.
"""

import logging
from datetime import date, timedelta
from typing import Any, Callable, Optional

from sourcer.domain.interfaces.api_client import ApiClient
from sourcer.domain.models.api import ApiResponse

logger = logging.getLogger(__name__)

DEFAULT_TREND_DAYS = 30


class KeywordService:
    """Keyword search, trends and competition lookups."""

    def __init__(self, api_client: ApiClient, today: Callable[[], date] = date.today):
        """Initializes the KeywordService with its dependencies."""
        self.api_client = api_client
        self._today = today

    async def _get(self, path: str, **params: Any) -> ApiResponse:
        query = {k: v for k, v in params.items() if v is not None}
        response = await self.api_client.request('GET', path, {'query': query})
        if not response.success:
            logger.info(f"Keyword lookup {path} failed: [{response.code}] {response.message}")
        return response

    async def search(self, keyword: str) -> ApiResponse:
        return await self._get('/v2/keywords/search', keyword=keyword)

    async def related(self, keyword: str) -> ApiResponse:
        return await self._get('/v2/keywords/related', keyword=keyword)

    async def trends(
        self,
        keyword: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        **options: Any,
    ) -> ApiResponse:
        """Search volume trend for a keyword, by default over the last 30 days."""
        today = self._today()
        return await self._get(
            '/v2/keywords/trends',
            keyword=keyword,
            startDate=start_date or (today - timedelta(days=DEFAULT_TREND_DAYS)).isoformat(),
            endDate=end_date or today.isoformat(),
            **options,
        )

    async def popular_by_category(self, category_id: str, limit: int = 20) -> ApiResponse:
        return await self._get('/v2/keywords/popular/category', categoryId=category_id, limit=limit)

    async def competition(self, keyword: str) -> ApiResponse:
        return await self._get('/v2/keywords/competition', keyword=keyword)

    async def analyze(self, keyword: str) -> ApiResponse:
        return await self._get('/v2/keywords/analyze', keyword=keyword)

    async def suggestions(self, keyword: str, limit: int = 10) -> ApiResponse:
        return await self._get('/v2/keywords/suggestions', keyword=keyword, limit=limit)

    async def competitors(self, keyword: str) -> ApiResponse:
        return await self._get('/v2/keywords/competitors', keyword=keyword)

    async def rising(self, limit: int = 20) -> ApiResponse:
        return await self._get('/v2/keywords/rising', limit=limit)
