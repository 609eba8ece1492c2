import pytest

from deepsearch.models.config import ConfigurationError, LLMProvider, load_settings


def test_defaults_from_minimal_environment():
    settings = load_settings(env={"OPENAI_API_KEY": "sk-test", "FIRECRAWL_KEY": "fc-test"})

    assert settings.search.concurrency == 2
    assert settings.llm.context_size == 128_000
    assert settings.has_llm and settings.has_search_backend
    assert not settings.is_local_firecrawl

    [instance] = settings.llm.instances[LLMProvider.OPENAI]
    assert instance.key == "sk-test"
    assert instance.base_url is None
    settings.validate_for_research()


def test_full_environment_is_parsed():
    settings = load_settings(env={
        "OPENAI_API_KEY": "sk-test",
        "OPENAI_ENDPOINT": "http://localhost:1234/v1",
        "OPENAI_MODEL": "o3",
        "XAI_API_KEY": "xai-test",
        "FIRECRAWL_BASE_URL": "http://localhost:3002",
        "FIRECRAWL_CONCURRENCY": "5",
        "CONTEXT_SIZE": "64000",
        "SEARXNG_URL": "http://localhost:8080",
        "DEEPSEARCH_LOG_FILE": "research.log",
    })

    openai = settings.llm.instances[LLMProvider.OPENAI][0]
    assert openai.base_url == "http://localhost:1234/v1"
    assert openai.model_name == "o3"
    assert settings.llm.instances[LLMProvider.XAI][0].base_url == "https://api.x.ai/v1"
    assert settings.search.concurrency == 5
    assert settings.llm.context_size == 64_000
    assert settings.is_local_firecrawl
    assert settings.search.searxng_url == "http://localhost:8080"
    assert settings.log_file == "research.log"
    assert settings.environment_check()["providers"] == ["openai", "xai"]


def test_bad_integers_fall_back_to_defaults():
    settings = load_settings(env={"FIRECRAWL_CONCURRENCY": "lots", "CONTEXT_SIZE": ""})

    assert settings.search.concurrency == 2
    assert settings.llm.context_size == 128_000


def test_concurrency_is_at_least_one():
    assert load_settings(env={"FIRECRAWL_CONCURRENCY": "0"}).search.concurrency == 1


@pytest.mark.parametrize("env", [
    {"FIRECRAWL_KEY": "fc-test"},
    {"OPENAI_API_KEY": "sk-test"},
    {},
])
def test_missing_collaborator_fails_fast(env):
    with pytest.raises(ConfigurationError):
        load_settings(env=env).validate_for_research()
