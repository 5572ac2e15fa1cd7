"""FastAPI application exposing the menu optimization API."""

import logging
from typing import Dict

from fastapi import FastAPI, HTTPException

from menu_optimizer.api.routes.analytics import router as analytics_router
from menu_optimizer.api.routes.market_data import router as market_data_router
from menu_optimizer.api.routes.menu import router as menu_router
from menu_optimizer.api.routes.menu_items import router as menu_items_router
from menu_optimizer.api.routes.optimizations import router as optimizations_router
from menu_optimizer.api.routes.restaurants import router as restaurants_router
from menu_optimizer.config.settings import LOG_LEVEL, STAGE
from menu_optimizer.config.supabase_client import SUPABASE_ANON_KEY, SUPABASE_URL

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="Menu Optimizer")
logger = logging.getLogger(__name__)

app.include_router(restaurants_router)
app.include_router(optimizations_router)
app.include_router(menu_items_router)
app.include_router(menu_router)
app.include_router(market_data_router)
app.include_router(analytics_router)

logger.info("Menu optimizer API ready", extra={"stage": STAGE})


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/config")
def supabase_config() -> Dict[str, str]:
    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise HTTPException(status_code=500, detail="Supabase configuration missing.")
    return {"supabaseUrl": SUPABASE_URL, "supabaseAnonKey": SUPABASE_ANON_KEY}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("menu_optimizer.main:app", host="127.0.0.1", port=8000, reload=True)
