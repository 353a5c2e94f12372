from fastapi import FastAPI

from backoffice.api.endpoints import health, orders, sync, tracking

app = FastAPI(title="Order Backoffice")

app.include_router(health.router, tags=["Health"])
app.include_router(sync.router, prefix="/api/sync", tags=["Sync"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(tracking.router, prefix="/api/tracking", tags=["Tracking"])
