"""
HTTP adapter for the link pipeline.

Routes:
    GET  /links        paginated, score-descending links (minScore, keyword, parentUrl, page)
    GET  /links/{id}   one stored link
    POST /scrape       run the pipeline for {"url": ...} and store the results

Every response, success or failure, is the {error, message, data} envelope.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from harvest import FatalFetchError, FetchError, InvalidTargetError, validate_target_url
from orchestrate.config import Settings, load_settings
from orchestrate.pipeline import LinkPipeline
from orchestrate.presenter import envelope, page_to_dict, record_to_dict, scrape_summary

from .errors import (
    HttpError,
    http_error_handler,
    starlette_http_exception_handler,
    unhandled_error_handler,
)
from .rate_limit import FixedWindowLimiter, RateLimitMiddleware


logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def parse_min_score(raw: str | None) -> float:
    if raw is None or raw == "":
        return 0.0
    try:
        value = float(raw)
    except ValueError:
        raise HttpError("Invalid minScore parameter", 400) from None
    if not math.isfinite(value) or value < 0:
        raise HttpError("Invalid minScore parameter", 400)
    return value


def parse_page(raw: str | None, max_page: int | None = None) -> int:
    if raw is None or raw == "":
        return 1
    try:
        value = int(raw)
    except ValueError:
        raise HttpError("Invalid page parameter", 400) from None
    if value < 1 or (max_page is not None and value > max_page):
        raise HttpError("Invalid page parameter", 400)
    return value


def create_app(
    settings: Settings | None = None,
    pipeline: LinkPipeline | None = None,
) -> Starlette:
    """
    Build the Starlette app.

    Without an explicit pipeline one is built from settings and closed on
    shutdown; a pipeline passed in stays owned by the caller.
    """
    settings = settings or load_settings()
    owns_pipeline = pipeline is None
    if pipeline is None:
        pipeline = LinkPipeline.from_settings(settings)
    if pipeline.repository is None:
        raise ValueError("the HTTP adapter needs a pipeline with a repository")
    repository = pipeline.repository

    async def list_links(request: Request) -> JSONResponse:
        params = request.query_params
        min_score = parse_min_score(params.get("minScore"))
        page = parse_page(params.get("page"), repository.max_page)
        keyword = params.get("keyword") or None
        parent_url = params.get("parentUrl") or None

        result = await asyncio.to_thread(
            repository.query,
            min_score=min_score,
            keyword=keyword,
            parent_url=parent_url,
            page=page,
        )
        return JSONResponse(envelope(page_to_dict(result), "Successfully retrieved links"))

    async def get_link(request: Request) -> JSONResponse:
        link_id = request.path_params["link_id"]
        record = await asyncio.to_thread(repository.get_by_id, link_id)
        if record is None:
            raise HttpError("Link not found", 404)
        return JSONResponse(envelope(record_to_dict(record), "Successfully retrieved link"))

    async def scrape(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
        url = body.get("url") if isinstance(body, dict) else None
        try:
            url = validate_target_url(url)
        except InvalidTargetError:
            raise HttpError("Valid `url` required", 400) from None

        try:
            result = await pipeline.scrape(url)
        except FatalFetchError as exc:
            raise HttpError(str(exc), 422) from exc
        except FetchError as exc:
            raise HttpError(f"Failed to fetch {url}: {exc}", 502) from exc

        return JSONResponse(envelope(scrape_summary(result), "Scrape completed"))

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Link API ready (db=%s)", settings.database.path)
        try:
            yield
        finally:
            if owns_pipeline:
                await pipeline.close()

    limiter = FixedWindowLimiter(
        max_requests=settings.rate_limit.max_requests,
        window_seconds=settings.rate_limit.window_seconds,
    )

    app = Starlette(
        routes=[
            Route("/links", list_links, methods=["GET"]),
            Route("/links/{link_id}", get_link, methods=["GET"]),
            Route("/scrape", scrape, methods=["POST"]),
        ],
        middleware=[Middleware(RateLimitMiddleware, limiter=limiter)],
        exception_handlers={
            HttpError: http_error_handler,
            HTTPException: starlette_http_exception_handler,
            Exception: unhandled_error_handler,
        },
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    app.state.settings = settings
    return app
