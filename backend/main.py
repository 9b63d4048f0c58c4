import logging
import os
import re
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from config import Settings
from connectors.github_connector import RepositoryListingError
from markdown_images import extract_project_images, strip_project_images
from models import MarkdownImagesRequest, MarkdownImagesResponse, ProjectDetail
from project_index import ProjectIndexService

logger = logging.getLogger("showcase")
logger.setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Attach to uvicorn's handler (available now that uvicorn is running)
    uvicorn_logger = logging.getLogger("uvicorn")
    for h in uvicorn_logger.handlers:
        logger.addHandler(h)

    settings = Settings.from_env()
    app.state.index = ProjectIndexService(settings)
    logger.info("Showcase index for owner=%s strict=%s authenticated=%s",
                settings.owner, settings.strict, bool(settings.token))
    yield
    await app.state.index.close()


# Disable docs in production
docs_url = "/docs" if os.environ.get("ENV") == "dev" else None
redoc_url = "/redoc" if os.environ.get("ENV") == "dev" else None

app = FastAPI(
    title="Showcase Index API", version="0.1.0",
    docs_url=docs_url, redoc_url=redoc_url, lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# GitHub repository names are at most 100 characters; escapes can triple that.
SLUG_RE = re.compile(r"^[^\x00-\x1f/]{1,300}$")


def get_index_service(request: Request) -> ProjectIndexService:
    return request.app.state.index


def _validate_slug(slug: str):
    if not SLUG_RE.match(slug):
        raise HTTPException(status_code=400, detail="Invalid slug format")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/projects")
async def list_projects(index: ProjectIndexService = Depends(get_index_service)):
    """Ranked public projects. An empty list means no public repositories are available."""
    try:
        projects = await index.get_all_public_projects()
    except RepositoryListingError as e:
        logger.error("projects LISTING_FAILED error=%s", e)
        raise HTTPException(status_code=503, detail="Repository listing unavailable")
    except Exception:
        logger.exception("projects BUILD_ERROR")
        raise HTTPException(status_code=502, detail="Upstream error")

    return {
        "total": len(projects),
        "projects": [p.model_dump(by_alias=True) for p in projects],
    }


@app.get("/api/projects/{slug}", response_model=ProjectDetail)
async def project_detail(slug: str, index: ProjectIndexService = Depends(get_index_service)):
    _validate_slug(slug)
    detail = await index.get_project_detail(slug)
    if detail is None:
        raise HTTPException(status_code=404, detail="Unknown project")
    return detail


@app.post("/api/markdown/images", response_model=MarkdownImagesResponse)
async def markdown_images(req: MarkdownImagesRequest, index: ProjectIndexService = Depends(get_index_service)):
    """Gallery URLs and image-free markdown for an arbitrary README body."""
    owner = index.settings.owner
    return MarkdownImagesResponse(
        images=extract_project_images(req.markdown, owner, req.repo_name, req.branch),
        markdown=strip_project_images(req.markdown),
    )
