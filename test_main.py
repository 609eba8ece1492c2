import pytest
from fastapi import HTTPException

from conftest import FakeSearchEngine

from deepsearch import main
from deepsearch.core.deep_research.models import FinalReport, ResearchConfig


@pytest.fixture
def ready_app(monkeypatch, generator, search_engine):
    generator.on(FinalReport, lambda prompt: {"report_markdown": "# Findings"})
    monkeypatch.setattr(main, "llm_router", generator)
    monkeypatch.setattr(main, "web_search", search_engine)
    monkeypatch.setattr(main, "research_config", ResearchConfig())
    return generator


async def test_research_endpoint_returns_report_and_stats(ready_app):
    response = await main.research(main.ResearchRequest(query="tidal power", depth=1, breadth=2, token_budget=5000))

    assert response.report.startswith("# Findings")
    assert "## Sources" in response.report
    assert response.stats.total_learnings == len(response.learnings) == 2
    assert response.stats.total_sources == len(response.visited_urls)
    assert response.stats.average_reliability == pytest.approx(0.75)
    assert response.budget.limit == 5000


async def test_average_reliability_is_zero_without_learnings(ready_app, monkeypatch):
    monkeypatch.setattr(main, "web_search", FakeSearchEngine(documents=FakeSearchEngine.no_documents))

    response = await main.research(main.ResearchRequest(query="nothing to find", depth=1, breadth=1))

    assert response.learnings == []
    assert response.stats.average_reliability == 0.0
    assert response.budget is None


async def test_health_reports_router_stats(ready_app):
    health = await main.health()
    assert health["status"] == "healthy"
    assert "fake" in health["llm"]


async def test_endpoints_refuse_before_startup(monkeypatch):
    monkeypatch.setattr(main, "llm_router", None)

    assert (await main.health())["status"] == "starting"
    with pytest.raises(HTTPException) as excinfo:
        await main.list_models()
    assert excinfo.value.status_code == 503
