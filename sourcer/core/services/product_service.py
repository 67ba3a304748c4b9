"""Core service for product lookups against the marketplace API."""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

from sourcer.domain.interfaces.api_client import ApiClient
from sourcer.domain.models.api import ApiResponse

logger = logging.getLogger(__name__)


class ProductService:
    """Product search, detail, listing and review lookups."""

    def __init__(self, api_client: ApiClient):
        self.api_client = api_client

    async def _get(self, path: str, query: Optional[Dict[str, Any]] = None) -> ApiResponse:
        options = {'query': {k: v for k, v in query.items() if v is not None}} if query else None
        response = await self.api_client.request('GET', path, options)
        if not response.success:
            logger.info(f"Product lookup {path} failed: [{response.code}] {response.message}")
        return response

    async def search(
        self,
        keyword: str,
        limit: int = 20,
        page: int = 1,
        sort: str = 'RELEVANCE',
        filters: Optional[Dict[str, Any]] = None,
    ) -> ApiResponse:
        return await self._get('/v2/products/search', {
            'keyword': keyword,
            'limit': limit,
            'page': page,
            'sortType': sort,
            'filter': filters or None,
        })

    async def get_product(self, product_id: str) -> ApiResponse:
        return await self._get(f"/v2/products/{quote(str(product_id), safe='')}")

    async def by_category(self, category_id: str, limit: int = 20, page: int = 1, sort_type: str = 'BEST_SELLING') -> ApiResponse:
        return await self._get('/v2/products/category', {
            'categoryId': category_id, 'limit': limit, 'page': page, 'sortType': sort_type,
        })

    async def by_seller(self, seller_id: str, limit: int = 20, page: int = 1, sort_type: str = 'BEST_SELLING') -> ApiResponse:
        return await self._get('/v2/products/seller', {
            'sellerId': seller_id, 'limit': limit, 'page': page, 'sortType': sort_type,
        })

    async def reviews(self, product_id: str, limit: int = 20, page: int = 1, sort_type: str = 'RECENT') -> ApiResponse:
        return await self._get(f"/v2/products/{quote(str(product_id), safe='')}/reviews", {
            'limit': limit, 'page': page, 'sortType': sort_type,
        })
