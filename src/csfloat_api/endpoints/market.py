"""
CSFloat marketplace endpoints.

Every endpoint is a single call into the generic dispatcher. Bodies are
kept as opaque JSON; this module does not model marketplace entities.
"""

from typing import Any, Iterable, Optional
from urllib.parse import quote

from csfloat_api.core import (
    EmptyResponse,
    JSONResponse,
    RequestDispatcher,
)
from csfloat_api.core.exchange import credential_fingerprint


class MarketEndpoints:
    """
    Thin call sites for the marketplace API.

    Endpoints with path parameters share one rate limit bucket per route
    template and credential, e.g. all ``GET listings/{id}`` calls of one
    API key are throttled together.
    """

    STALL_LIMIT = 40
    INVENTORY_LIMIT = 40
    LISTINGS_LIMIT = 40
    ITEM_BUY_ORDERS_LIMIT = 3
    LISTING_BUY_ORDERS_LIMIT = 10
    PAGE_LIMIT = 100

    def __init__(self, dispatcher: RequestDispatcher, base_url: Optional[str] = None):
        self.dispatcher = dispatcher
        self.base_url = (base_url or dispatcher.config.base_url).rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    @staticmethod
    def _key(method: str, route: str, api_key: str) -> str:
        return f"{method} {route} #{credential_fingerprint(api_key)}"

    async def _get(
        self,
        api_key: str,
        route: str,
        path: str,
        query: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> JSONResponse:
        return await self.dispatcher.send(
            "GET",
            self._url(path),
            api_key,
            JSONResponse(),
            query=query,
            bucket_key=self._key("GET", route, api_key),
            **kwargs,
        )

    async def me(self, api_key: str, **kwargs: Any) -> JSONResponse:
        """Return the profile of the key's owner, including balance."""
        return await self._get(api_key, "me", "me", **kwargs)

    async def listing(self, api_key: str, listing_id: str, **kwargs: Any) -> JSONResponse:
        return await self._get(
            api_key, "listings/{id}", f"listings/{quote(listing_id, safe='')}", **kwargs
        )

    async def listings(
        self,
        api_key: str,
        wait: Optional[bool] = None,
        timeout: Optional[float] = None,
        **filters: Any,
    ) -> JSONResponse:
        """
        Search buy-now listings, sorted by highest discount.

        Filters with a value of None, 0 or [] are left out; False is sent.
        Sequences (e.g. ``paint_seed``) are sent comma separated.
        """
        query: dict[str, Any] = {
            "type": "buy_now",
            "sort_by": "highest_discount",
            "limit": self.LISTINGS_LIMIT,
        }
        for name, value in filters.items():
            if value is None or value == [] or (value == 0 and not isinstance(value, bool)):
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            if isinstance(value, (list, tuple)):
                value = ",".join(str(v) for v in value)
            query[name] = value
        return await self._get(
            api_key, "listings", "listings", query, wait=wait, timeout=timeout
        )

    async def similar(self, api_key: str, listing_id: str, **kwargs: Any) -> JSONResponse:
        return await self._get(
            api_key,
            "listings/{id}/similar",
            f"listings/{quote(listing_id, safe='')}/similar",
            **kwargs,
        )

    async def stall(self, api_key: str, steam_id: str, **kwargs: Any) -> JSONResponse:
        return await self._get(
            api_key,
            "users/{id}/stall",
            f"users/{quote(steam_id, safe='')}/stall",
            {"limit": self.STALL_LIMIT},
            **kwargs,
        )

    async def inventory(self, api_key: str, **kwargs: Any) -> JSONResponse:
        """Tradable Steam inventory; items already listed carry a listing_id."""
        return await self._get(
            api_key, "me/inventory", "me/inventory", {"limit": self.INVENTORY_LIMIT}, **kwargs
        )

    async def list_item(self, api_key: str, payload: dict[str, Any], **kwargs: Any) -> JSONResponse:
        return await self.dispatcher.send(
            "POST",
            self._url("listings"),
            api_key,
            JSONResponse(),
            payload=payload,
            bucket_key=self._key("POST", "listings", api_key),
            **kwargs,
        )

    async def update_listing(
        self, api_key: str, listing_id: str, payload: dict[str, Any], **kwargs: Any
    ) -> EmptyResponse:
        return await self.dispatcher.send(
            "PATCH",
            self._url(f"listings/{quote(listing_id, safe='')}"),
            api_key,
            EmptyResponse(),
            payload=payload,
            bucket_key=self._key("PATCH", "listings/{id}", api_key),
            **kwargs,
        )

    async def unlist(self, api_key: str, listing_id: str, **kwargs: Any) -> EmptyResponse:
        return await self.dispatcher.send(
            "DELETE",
            self._url(f"listings/{quote(listing_id, safe='')}"),
            api_key,
            EmptyResponse(),
            bucket_key=self._key("DELETE", "listings/{id}", api_key),
            **kwargs,
        )

    async def buy(
        self, api_key: str, contract_ids: Iterable[str], total_price: int, **kwargs: Any
    ) -> EmptyResponse:
        return await self.dispatcher.send(
            "POST",
            self._url("listings/buy"),
            api_key,
            EmptyResponse(),
            payload={"contract_ids": list(contract_ids), "total_price": total_price},
            bucket_key=self._key("POST", "listings/buy", api_key),
            **kwargs,
        )

    async def item_buy_orders(self, api_key: str, inspect_link: str, **kwargs: Any) -> JSONResponse:
        return await self._get(
            api_key,
            "buy-orders/item",
            "buy-orders/item",
            {"limit": self.ITEM_BUY_ORDERS_LIMIT, "url": inspect_link},
            **kwargs,
        )

    async def listing_buy_orders(self, api_key: str, listing_id: str, **kwargs: Any) -> JSONResponse:
        return await self._get(
            api_key,
            "listings/{id}/buy-orders",
            f"listings/{quote(listing_id, safe='')}/buy-orders",
            {"limit": self.LISTING_BUY_ORDERS_LIMIT},
            **kwargs,
        )

    async def similar_buy_orders(self, api_key: str, market_hash_name: str, **kwargs: Any) -> JSONResponse:
        # The API takes a POST with a body for what is a lookup.
        return await self.dispatcher.send(
            "POST",
            self._url("buy-orders/similar-orders"),
            api_key,
            JSONResponse(),
            payload={"market_hash_name": market_hash_name},
            query={"limit": self.ITEM_BUY_ORDERS_LIMIT},
            bucket_key=self._key("POST", "buy-orders/similar-orders", api_key),
            **kwargs,
        )

    async def trades(
        self,
        api_key: str,
        page: int = 0,
        limit: int = 0,
        states: Iterable[str] = (),
        **kwargs: Any,
    ) -> JSONResponse:
        query: dict[str, Any] = {}
        states = list(states)
        if states:
            query["state"] = ",".join(states)
        query["page"] = page
        query["limit"] = limit or self.PAGE_LIMIT
        return await self._get(api_key, "me/trades", "me/trades", query, **kwargs)

    async def history(
        self, api_key: str, market_hash_name: str, paint_index: int = 0, **kwargs: Any
    ) -> JSONResponse:
        """Recent sales of an item. Fails with SALES_HISTORY_NOT_AVAILABLE for some items."""
        return await self._get(
            api_key,
            "history/{name}/sales",
            f"history/{quote(market_hash_name, safe='')}/sales",
            {"paint_index": paint_index},
            **kwargs,
        )

    async def transactions(
        self,
        api_key: str,
        page: int = 0,
        limit: int = 0,
        order: str = "desc",
        **kwargs: Any,
    ) -> JSONResponse:
        query = {"order": order, "page": page, "limit": limit or self.PAGE_LIMIT}
        return await self._get(api_key, "me/transactions", "me/transactions", query, **kwargs)
