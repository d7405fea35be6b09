"""Endpoint call sites built on the core dispatcher."""

from csfloat_api.endpoints.market import MarketEndpoints

__all__ = ["MarketEndpoints"]
