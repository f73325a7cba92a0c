"""FastAPI server that exposes the board membership analytics."""
from __future__ import annotations

from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import DashboardConfig, load_config
from .insights import derive_insights_from_payload
from .service import MembershipAnalyticsService
from .sources import MembershipSource, build_source_from_env

MEMBERSHIPS_PATH = "/api/memberships"


def create_app(
    config: Optional[DashboardConfig] = None,
    source: Optional[MembershipSource] = None,
) -> FastAPI:
    cfg = config or load_config()
    membership_source = source if source is not None else build_source_from_env(cfg)
    service = MembershipAnalyticsService(cfg, membership_source)

    app = FastAPI(title="Board Membership Analytics API", version="0.1.0")
    app.state.service = service

    # The board dashboard is served from a different origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.api_route(MEMBERSHIPS_PATH, methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
    async def memberships_endpoint(request: Request) -> JSONResponse:
        if request.method != "GET":
            return JSONResponse(
                status_code=405,
                content={"message": "Method not allowed"},
                headers={"Allow": "GET"},
            )
        response = await run_in_threadpool(service.get_memberships)
        return JSONResponse(status_code=response.status_code, content=response.body)

    @app.get(f"{MEMBERSHIPS_PATH}/insights")
    async def insights_endpoint() -> JSONResponse:
        response = await run_in_threadpool(service.get_memberships)
        if response.status_code != 200:
            return JSONResponse(status_code=response.status_code, content=response.body)

        content: Dict[str, Any] = {
            "metrics": response.body["metrics"],
            "insights": derive_insights_from_payload(response.body).as_dict(),
            "source": response.source,
        }
        return JSONResponse(status_code=200, content=content)

    return app


load_dotenv()
app = create_app()
