"""FastAPI application entry point"""

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Any, AsyncIterator, Dict, Optional
import logging

from app.config.settings import settings
from app.crawlers.github.client import GitHubGateway
from app.crawlers.github.errors import GatewayError, NotFoundError, RateLimitedError, ValidationError
from app.jobs.activity import (
    classify_user_repositories,
    generate_repository_content,
    generate_work_log,
    parse_repository_url,
)
from app.services.worklog import render_work_log_digest

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="GitHub activity intelligence: curriculum detection, work logs and share text",
    version=settings.APP_VERSION
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ContentRequest(BaseModel):
    custom_message: str = ""
    days: Optional[int] = None


async def get_gateway() -> AsyncIterator[GitHubGateway]:
    """One gateway per request; closed when the response is sent."""
    async with GitHubGateway() as gateway:
        yield gateway


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    """Translate gateway failures into HTTP responses"""
    headers: Dict[str, str] = {}
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, RateLimitedError):
        status_code = 429
        if exc.retry_after:
            headers["Retry-After"] = str(int(round(exc.retry_after)))
    elif isinstance(exc, ValidationError):
        status_code = 422
    else:
        status_code = 502

    logger.warning(f"{request.method} {request.url.path} failed with {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": exc.user_message}, headers=headers)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/api/health",
            "parse_url": "/api/parse-url?url=",
            "classifications": "/api/users/{username}/classifications",
            "worklog": "/api/repos/{owner}/{repo}/worklog?days=7",
            "content": "POST /api/repos/{owner}/{repo}/content",
        }
    }


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


@app.get("/api/parse-url")
async def parse_url(url: str = Query(...)):
    """Extract owner/repo from a repository URL"""
    ref = parse_repository_url(url)
    if ref is None:
        raise HTTPException(status_code=422, detail="Not a repository URL of the form https://host/owner/repo")
    return {"owner": ref.owner, "repo": ref.repo, "full_name": ref.full_name}


@app.get("/api/users/{username}/classifications")
async def classifications(
    username: str,
    fetch_readmes: bool = True,
    curriculum_only: bool = False,
    gateway: GitHubGateway = Depends(get_gateway),
):
    """Classify a user's repositories as curriculum projects"""
    results = await classify_user_repositories(username, gateway=gateway, fetch_readmes=fetch_readmes)
    items = []
    for repo, result in results:
        if curriculum_only and not result.is_curriculum:
            continue
        items.append({
            "id": repo.id,
            "name": repo.name,
            "url": repo.url,
            "language": repo.primary_language,
            "updated_at": repo.updated_at.isoformat() if repo.updated_at else None,
            "confidence": result.confidence,
            "category": result.category.value,
            "is_curriculum": result.is_curriculum,
            "signals": [{"signal": s.signal, "weight": s.weight} for s in result.matched_signals],
        })
    logger.info(f"Classified {len(results)} repositories for {username}")
    return {"username": username, "count": len(items), "repositories": items}


@app.get("/api/repos/{owner}/{repo}/worklog")
async def worklog(
    owner: str,
    repo: str,
    days: int = Query(default=settings.WORKLOG_DEFAULT_DAYS, ge=1),
    gateway: GitHubGateway = Depends(get_gateway),
):
    """Categorized work log for a repository's recent commits"""
    work_log = await generate_work_log(owner, repo, days, gateway=gateway)
    if work_log is None:
        return {"repository": f"{owner}/{repo}", "timeframe_days": days, "activity": False, "work_log": None}
    return {
        "repository": f"{owner}/{repo}",
        "timeframe_days": days,
        "activity": True,
        "work_log": _work_log_payload(work_log),
    }


@app.post("/api/repos/{owner}/{repo}/content")
async def platform_content(
    owner: str,
    repo: str,
    request: ContentRequest,
    gateway: GitHubGateway = Depends(get_gateway),
):
    """Share text for every platform, built from the repository's recent activity"""
    work_log, contents = await generate_repository_content(
        owner,
        repo,
        timeframe_days=request.days,
        custom_message=request.custom_message,
        gateway=gateway,
    )
    return {
        "repository": f"{owner}/{repo}",
        "work_log": _work_log_payload(work_log) if work_log else None,
        "content": {platform.value: item.as_dict() for platform, item in contents.items()},
    }


def _work_log_payload(work_log) -> Dict[str, Any]:
    latest = work_log.latest_commit
    return {
        "commit_count": work_log.commit_count,
        "category_counts": {category.value: count for category, count in work_log.category_counts.items()},
        "most_active_category": work_log.most_active_category.value if work_log.most_active_category else None,
        "latest_commit": {
            "sha": latest.sha,
            "message": latest.headline,
            "author_date": latest.author_date.isoformat(),
            "url": latest.url,
        } if latest else None,
        "narrative_summary": work_log.narrative_summary,
        "digest": render_work_log_digest(work_log),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
