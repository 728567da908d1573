from fastapi import FastAPI, Query, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from dotenv import load_dotenv
from limits.storage import MemoryStorage
from typing import List, Optional
from contextlib import asynccontextmanager
import logging
import traceback

load_dotenv()

from app.config import Settings, settings as default_settings
from app.rate_limit import (
    RateGovernor,
    QuotaExceeded,
    enforce_search_quota,
    quota_exceeded_handler,
)
from app.search import PacingPolicy, PageOrchestrator, SearchParams
from core.net import HTTPClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class JobPostingOut(BaseModel):
    id: str
    title: str = ""
    company: str = ""
    location: str = ""
    date: str = ""
    url: str = ""
    logo: str = ""


def build_governor(config: Settings) -> RateGovernor:
    return RateGovernor(
        storage=MemoryStorage(),
        max_requests=config.rate_limit_max,
        window_seconds=config.rate_limit_window_seconds,
    )


def build_orchestrator(config: Settings) -> PageOrchestrator:
    http_client = HTTPClient(timeout=config.http_timeout, retries=config.http_retries)
    return PageOrchestrator(
        fetch_text=http_client.fetch_text,
        pacing=PacingPolicy(interval_seconds=config.page_delay_ms / 1000.0),
        base_url=config.upstream_url,
    )


def create_app(
    config: Optional[Settings] = None,
    governor: Optional[RateGovernor] = None,
    orchestrator: Optional[PageOrchestrator] = None,
) -> FastAPI:
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application lifecycle events."""
        logger.info(f"[joblens] env: JOBLENS_ENV={config.env}")
        logger.info(
            f"[joblens] search quota: {config.rate_limit_max} requests / "
            f"{config.rate_limit_window_seconds}s per client"
        )
        yield

    app = FastAPI(title="JobLens API", version="0.1.0", lifespan=lifespan)
    app.state.settings = config
    app.state.governor = governor if governor is not None else build_governor(config)
    app.state.orchestrator = orchestrator if orchestrator is not None else build_orchestrator(config)

    app.add_exception_handler(QuotaExceeded, quota_exceeded_handler)

    @app.middleware("http")
    async def error_masking_middleware(request: Request, call_next):
        """Mask detailed errors in production; show full errors in dev."""
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error: {str(e)}")
            if config.is_dev:
                logger.error(traceback.format_exc())
                return JSONResponse(
                    status_code=500,
                    content={
                        "status": "error",
                        "error": str(e),
                        "traceback": traceback.format_exc(),
                    },
                )
            return JSONResponse(
                status_code=500,
                content={
                    "status": "error",
                    "error": "An internal error occurred. Please try again later.",
                },
            )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/api/healthz")
    async def healthz(request: Request):
        governor: RateGovernor = request.app.state.governor
        return {
            "status": "ok",
            "rate_limit": {
                "max": governor.max_requests,
                "window_seconds": governor.window_seconds,
            },
        }

    @app.get(
        "/api/search",
        response_model=List[JobPostingOut],
        dependencies=[Depends(enforce_search_quota)],
    )
    async def search(
        request: Request,
        keywords: Optional[str] = Query(None, description="Search keywords"),
        location: Optional[str] = Query(None, description="Free-text location"),
        language_tag: Optional[str] = Query(None, alias="languageTag", description="Locale, e.g. en_US"),
        start: Optional[str] = Query(None, description="Result offset"),
        pages: Optional[str] = Query(None, description="Number of pages to fetch (1-10)"),
        geo_id: Optional[str] = Query(None, alias="geoId"),
        work_type: Optional[str] = Query(None, alias="workType", description="CSV of work types"),
        time_posted_range: Optional[str] = Query(None, alias="timePostedRange"),
        experience_level: Optional[str] = Query(None, alias="experienceLevel", description="CSV of levels"),
        job_type: Optional[str] = Query(None, alias="jobType", description="CSV of job types"),
        sort_by: Optional[str] = Query(None, alias="sortBy"),
        # Upstream parameter names, as sent by the web frontend
        l_tag: Optional[str] = Query(None, alias="_l", include_in_schema=False),
        f_wt: Optional[str] = Query(None, alias="f_WT", include_in_schema=False),
        f_tpr: Optional[str] = Query(None, alias="f_TPR", include_in_schema=False),
        f_e: Optional[str] = Query(None, alias="f_E", include_in_schema=False),
        f_jt: Optional[str] = Query(None, alias="f_JT", include_in_schema=False),
    ) -> List[dict]:
        params = SearchParams.from_raw(
            keywords=keywords,
            location=location,
            language_tag=language_tag or l_tag,
            start=start,
            pages=pages,
            geo_id=geo_id,
            work_type=work_type or f_wt,
            time_posted_range=time_posted_range or f_tpr,
            experience_level=experience_level or f_e,
            job_type=job_type or f_jt,
            sort_by=sort_by,
            max_pages=config.max_pages,
        )
        orchestrator: PageOrchestrator = request.app.state.orchestrator
        postings = await orchestrator.search(params)
        return [posting.to_dict() for posting in postings]

    return app


app = create_app()
