"""FastAPI application exposing the dashboard analytics rollups."""

import logging
from typing import Dict

from fastapi import FastAPI

from delivery_analytics.api.routes.analytics import router as analytics_router

app = FastAPI(title="Delivery Analytics")
logger = logging.getLogger(__name__)

app.include_router(analytics_router)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("delivery_analytics.main:app", host="127.0.0.1", port=8000, reload=True)
