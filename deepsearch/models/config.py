import os
import sys
from pathlib import Path
from typing import List, Dict, Optional
from enum import Enum

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field


class ConfigurationError(Exception):
    """Raised when a required collaborator (LLM or search backend) is not configured."""


class LLMProvider(str, Enum):
    """Supported LLM providers"""
    OPENAI = "openai"
    GROQ = "groq"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"
    XAI = "xai"


# Names accepted in "provider:model" specifiers
PROVIDER_ALIASES: Dict[str, LLMProvider] = {
    "openai": LLMProvider.OPENAI,
    "groq": LLMProvider.GROQ,
    "gemini": LLMProvider.GEMINI,
    "google": LLMProvider.GEMINI,
    "anthropic": LLMProvider.ANTHROPIC,
    "openrouter": LLMProvider.OPENROUTER,
    "xai": LLMProvider.XAI,
}


class APIKeyInstance(BaseModel):
    """Individual API key instance"""
    name: str
    key: str
    provider: LLMProvider
    model_name: Optional[str] = None
    base_url: Optional[str] = None
    active: bool = True
    request_count: int = 0
    error_count: int = 0
    last_used: Optional[float] = None


class LLMConfig(BaseModel):
    """LLM Engine configuration"""
    instances: Dict[LLMProvider, List[APIKeyInstance]] = Field(default_factory=dict)
    preferred_provider: Optional[LLMProvider] = None
    preferred_model: Optional[str] = None
    temperature: float = 0.4
    max_tokens: int = 8000
    context_size: int = 128_000


class SearchConfig(BaseModel):
    """Search backend configuration (Firecrawl primary, SearXNG optional)"""
    firecrawl_api_key: Optional[str] = None
    firecrawl_base_url: Optional[str] = None
    searxng_url: Optional[str] = None
    concurrency: int = Field(default=2, ge=1, le=32)
    search_timeout: float = 15.0
    scrape_missing_content: bool = True


class Settings(BaseModel):
    """Top-level settings assembled from the environment"""
    llm: LLMConfig = Field(default_factory=LLMConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    log_file: Optional[str] = None
    log_level: str = "INFO"

    @property
    def is_local_firecrawl(self) -> bool:
        return bool(self.search.firecrawl_base_url) and not self.search.firecrawl_api_key

    @property
    def has_search_backend(self) -> bool:
        s = self.search
        return bool(s.firecrawl_api_key or s.firecrawl_base_url or s.searxng_url)

    @property
    def has_llm(self) -> bool:
        return any(insts for insts in self.llm.instances.values())

    def validate_for_research(self):
        """Fail fast when either collaborator is missing."""
        if not self.has_llm:
            raise ConfigurationError(
                "No LLM provider configured. Set at least one of OPENAI_API_KEY, "
                "GOOGLE_API_KEY, ANTHROPIC_API_KEY, GROQ_API_KEY, XAI_API_KEY or OPENROUTER_API_KEY"
            )
        if not self.has_search_backend:
            raise ConfigurationError(
                "No search backend configured. Set FIRECRAWL_KEY, FIRECRAWL_BASE_URL or SEARXNG_URL"
            )

    def environment_check(self) -> Dict[str, object]:
        """Key presence summary, safe to log."""
        return {
            "providers": sorted(p.value for p, insts in self.llm.instances.items() if insts),
            "has_firecrawl_key": bool(self.search.firecrawl_api_key),
            "firecrawl_base_url": self.search.firecrawl_base_url or "(using API)",
            "searxng_url": self.search.searxng_url,
            "concurrency": self.search.concurrency,
        }


# env var → (provider, default model, base url env var, default base url)
_PROVIDER_ENV = [
    ("OPENAI_API_KEY", LLMProvider.OPENAI, "OPENAI_MODEL", "OPENAI_ENDPOINT", None),
    ("ANTHROPIC_API_KEY", LLMProvider.ANTHROPIC, "ANTHROPIC_MODEL", None, None),
    ("GOOGLE_API_KEY", LLMProvider.GEMINI, "GOOGLE_MODEL", None, None),
    ("GROQ_API_KEY", LLMProvider.GROQ, "GROQ_MODEL", None, None),
    ("XAI_API_KEY", LLMProvider.XAI, "XAI_MODEL", None, "https://api.x.ai/v1"),
    ("OPENROUTER_API_KEY", LLMProvider.OPENROUTER, "OPENROUTER_MODEL", None, "https://openrouter.ai/api/v1"),
]


def _int_env(env: Dict[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[Config] {name}={raw!r} is not an integer, using {default}")
        return default


def load_settings(env: Optional[Dict[str, str]] = None, dotenv: bool = True) -> Settings:
    """
    Build Settings from environment variables.

    When `env` is None the process environment is used, after loading
    `.env.local` and `.env` from the working directory (existing variables win).
    """
    if env is None:
        if dotenv:
            for name in (".env.local", ".env"):
                path = Path.cwd() / name
                if path.exists():
                    load_dotenv(path, override=False)
        env = dict(os.environ)

    llm = LLMConfig(context_size=_int_env(env, "CONTEXT_SIZE", 128_000))
    for key_var, provider, model_var, base_var, default_base in _PROVIDER_ENV:
        key = env.get(key_var)
        if not key:
            continue
        base_url = (env.get(base_var) if base_var else None) or default_base
        llm.instances.setdefault(provider, []).append(APIKeyInstance(
            name=key_var.lower(),
            key=key,
            provider=provider,
            model_name=env.get(model_var) or None,
            base_url=base_url,
        ))

    search = SearchConfig(
        firecrawl_api_key=env.get("FIRECRAWL_KEY") or None,
        firecrawl_base_url=env.get("FIRECRAWL_BASE_URL") or None,
        searxng_url=env.get("SEARXNG_URL") or None,
        concurrency=max(1, _int_env(env, "FIRECRAWL_CONCURRENCY", 2)),
    )

    return Settings(
        llm=llm,
        search=search,
        log_file=env.get("DEEPSEARCH_LOG_FILE") or None,
        log_level=env.get("DEEPSEARCH_LOG_LEVEL", "INFO"),
    )


def configure_logging(settings: Settings):
    """Route loguru to stderr (stdout may carry protocol traffic) plus an optional file."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", enqueue=True)
