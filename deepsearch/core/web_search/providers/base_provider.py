"""
Abstract base class for all web search providers.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


class SearchProviderError(Exception):
    """Raised when a provider cannot return results (network, HTTP or payload error)."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


@dataclass
class SearchDocument:
    """Standardized document returned by any provider."""
    url: str
    title: Optional[str] = None
    markdown: Optional[str] = None
    snippet: str = ""
    source_provider: str = ""
    date: Optional[str] = None


@dataclass
class SearchResponse:
    """Documents returned for one query, in provider rank order."""
    query: str
    documents: List[SearchDocument] = field(default_factory=list)
    provider: str = ""


class BaseSearchProvider(ABC):
    """Abstract base class for search providers."""

    def __init__(self, name: str, max_results: int = 5):
        self.name = name
        self.max_results = max_results

    @abstractmethod
    async def search(self, query: str, limit: Optional[int] = None) -> List[SearchDocument]:
        """
        Execute a search query and return standardized documents.
        Must be implemented by all providers; failures raise SearchProviderError.
        """
        pass

    def _clean_snippet(self, text: str, max_length: int = 500) -> str:
        """Clean and truncate a text snippet."""
        if not text:
            return ""
        # Remove excessive whitespace
        text = " ".join(text.split())
        if len(text) > max_length:
            text = text[:max_length] + "..."
        return text
