"""FastAPI backend for deep research"""
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from loguru import logger

from deepsearch.models.config import Settings, configure_logging, load_settings
from deepsearch.core.llm.llm_router import LLMRouter
from deepsearch.core.web_search import WebSearchEngine
from deepsearch.core.deep_research import DeepResearchOrchestrator, ReportWriter, format_sources_section
from deepsearch.core.deep_research.models import (
    BudgetState,
    ResearchConfig,
    ResearchOptions,
    ResearchProgress,
    SourceMetadata,
)


app = FastAPI(title="deepsearch API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialized at startup
settings: Optional[Settings] = None
llm_router: Optional[LLMRouter] = None
web_search: Optional[WebSearchEngine] = None
research_config: Optional[ResearchConfig] = None


@app.on_event("startup")
async def startup():
    global settings, llm_router, web_search, research_config
    settings = load_settings()
    configure_logging(settings)
    settings.validate_for_research()
    logger.info(f"Starting deep research service: {settings.environment_check()}")

    llm_router = LLMRouter(settings.llm)
    web_search = WebSearchEngine.from_config(settings.search)
    research_config = ResearchConfig(
        concurrency=settings.search.concurrency,
        search_timeout=settings.search.search_timeout,
    )


# Request/Response models
class ResearchRequest(BaseModel):
    query: str = Field(min_length=1)
    depth: int = Field(default=2, ge=1, le=5, description="Recursive levels; above 3 is slow")
    breadth: int = Field(default=3, ge=1, le=5, description="Queries per top level; above 3 is slow")
    model: Optional[str] = Field(default=None, description="provider:model, e.g. openai:o4-mini-2025-04-16")
    token_budget: Optional[int] = Field(default=None, ge=1)
    source_preferences: Optional[str] = None


class ResearchStats(BaseModel):
    total_learnings: int = 0
    total_sources: int = 0
    average_reliability: float = 0.0


class ResearchResponse(BaseModel):
    report: str
    learnings: List[str] = []
    visited_urls: List[str] = []
    source_metadata: List[SourceMetadata] = []
    stats: ResearchStats
    budget: Optional[BudgetState] = None


def _require_ready():
    if llm_router is None or web_search is None:
        raise HTTPException(status_code=503, detail="System not initialized")


@app.get("/health")
async def health():
    if llm_router is None:
        return {"status": "starting"}
    return {"status": "healthy", "llm": llm_router.get_statistics()}


@app.get("/models")
async def list_models():
    """Models available with the configured keys, best first"""
    _require_ready()
    return {"models": llm_router.get_available_models()}


@app.post("/research", response_model=ResearchResponse)
async def research(request: ResearchRequest):
    """Run recursive research and write the final report."""
    _require_ready()
    try:
        router = llm_router.with_model(request.model)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    last_progress: Dict[str, str] = {}

    def on_progress(progress: ResearchProgress):
        message = (
            f"Depth {progress.current_depth}/{progress.total_depth}, "
            f"Query {progress.completed_queries}/{progress.total_queries}: {progress.current_query or ''}"
        )
        if message != last_progress.get("message"):
            last_progress["message"] = message
            logger.info(message)

    orchestrator = DeepResearchOrchestrator(router, web_search, research_config)
    result = await orchestrator.research(
        request.query,
        depth=request.depth,
        breadth=request.breadth,
        options=ResearchOptions(
            token_budget=request.token_budget,
            source_preferences=request.source_preferences,
        ),
        on_progress=on_progress,
    )

    try:
        report = await ReportWriter(router, research_config).write(
            request.query, result.learnings, result.source_metadata
        )
    except Exception as e:
        logger.error(f"Report generation failed: {e}")
        raise HTTPException(status_code=502, detail=f"Error writing report: {e}")

    sources = format_sources_section(result.source_metadata)
    if sources:
        report = f"{report}\n\n{sources}"

    weighted = result.weighted_learnings
    return ResearchResponse(
        report=report,
        learnings=result.learnings,
        visited_urls=result.visited_urls,
        source_metadata=result.source_metadata,
        stats=ResearchStats(
            total_learnings=len(result.learnings),
            total_sources=len(result.visited_urls),
            average_reliability=sum(l.reliability for l in weighted) / len(weighted) if weighted else 0.0,
        ),
        budget=result.budget,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("deepsearch.main:app", host="0.0.0.0", port=8000)
