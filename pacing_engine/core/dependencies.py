"""
FastAPI dependency injection for the pacing engine.

Routers receive their collaborators (settings, plan reader, delivery gateway,
calling-layer cache) through these dependencies so tests can swap them with
app.dependency_overrides.

Usage:
    @router.post("/bulk")
    async def bulk(gateway: DeliveryGatewayDep, settings: SettingsDep):
        ...
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from pacing_engine.core.cache import TTLCache
from pacing_engine.core.config import Settings, get_settings
from pacing_engine.core.warehouse import get_warehouse
from pacing_engine.services.delivery_gateway import DeliveryDataGateway
from pacing_engine.services.plans import PlanRepository


def get_settings_dependency() -> Settings:
    """Return the cached Settings singleton."""
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


def get_plan_repository() -> PlanRepository:
    return PlanRepository()


async def get_delivery_gateway(settings: SettingsDep) -> DeliveryDataGateway:
    """Gateway bound to the shared BigQuery client."""
    warehouse = await get_warehouse()
    return DeliveryDataGateway(warehouse, settings=settings)


@lru_cache()
def get_portfolio_cache() -> TTLCache:
    """Process-wide read-through cache for portfolio snapshots."""
    settings = get_settings()
    return TTLCache(
        ttl_seconds=settings.portfolio_cache_ttl_seconds,
        max_entries=settings.portfolio_cache_max_entries,
    )


PlanRepositoryDep = Annotated[PlanRepository, Depends(get_plan_repository)]
DeliveryGatewayDep = Annotated[DeliveryDataGateway, Depends(get_delivery_gateway)]
PortfolioCacheDep = Annotated[TTLCache, Depends(get_portfolio_cache)]
