from fastapi import APIRouter

from glintup.api.health import router as health_router
from glintup.api.operations import router as operations_router
from glintup.api.outbox import router as outbox_router
from glintup.api.repair import router as repair_router
from glintup.api.subscribers import router as subscribers_router
from glintup.api.webhooks import router as webhooks_router
from glintup.dependencies import AdminOnly

api_router = APIRouter()

# Operator routes at /api/*, all behind X-Admin-Token
api_router.include_router(operations_router, prefix="/api", tags=["operations"], dependencies=AdminOnly)
api_router.include_router(outbox_router, prefix="/api", tags=["outbox"], dependencies=AdminOnly)
api_router.include_router(health_router, prefix="/api", tags=["health"], dependencies=AdminOnly)
api_router.include_router(repair_router, prefix="/api", tags=["repair"], dependencies=AdminOnly)
api_router.include_router(
    subscribers_router, prefix="/api", tags=["subscribers"], dependencies=AdminOnly
)

# Provider callbacks at /webhooks/*, authenticated by the provider's own scheme
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
