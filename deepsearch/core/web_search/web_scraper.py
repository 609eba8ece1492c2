"""
Web Content Scraper — full page text extraction for snippet-only search providers.
Goes beyond search engine snippets to extract and clean complete article text.
"""

import asyncio
import re
from typing import List, Optional, Tuple
from urllib.parse import urlparse
from loguru import logger

import httpx
import trafilatura
from bs4 import BeautifulSoup
from pydantic import BaseModel
from readability import Document as ReadabilityDocument


class ScrapedPage(BaseModel):
    """Result of scraping a single web page"""
    url: str
    title: str = ""
    content: str = ""
    domain: str = ""
    success: bool = False
    error: Optional[str] = None


class DeepWebScraper:
    """
    Asynchronous web scraper.

    Extraction tiers, first non-trivial result wins:
    1. trafilatura
    2. readability-lxml
    3. BeautifulSoup, preferring <article>/<main> regions

    Features:
    - Async batch scraping with concurrency control
    - Blocked domain filtering (social media, Q&A farms)
    - Content length limiting
    - Timeout handling
    """

    # Skipped entirely: social media and low-signal Q&A / aggregator sites
    BLOCKED_DOMAINS = {
        "twitter.com", "x.com", "facebook.com", "instagram.com",
        "tiktok.com", "linkedin.com", "pinterest.com",
        "youtube.com", "youtu.be",
        "quora.com", "answers.com", "ehow.com",
        "scribd.com",
        "slideshare.net",
    }

    # Common headers to mimic a browser
    DEFAULT_HEADERS = {
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }

    # Extractor output shorter than this falls through to the next tier
    MIN_EXTRACTED_CHARS = 100

    def __init__(self, timeout: float = 15.0, max_content: int = 15000, max_concurrent: int = 5):
        self.timeout = timeout
        self.max_content = max_content
        self.max_concurrent = max_concurrent

    async def scrape_urls(self, urls: List[str]) -> List[ScrapedPage]:
        """
        Scrape multiple URLs in parallel with concurrency control.

        Returns one ScrapedPage per input URL that is not blocked, in input order.
        """
        targets = []
        for url in urls:
            if self.is_blocked(url):
                logger.info(f"[WebScraper] Blocked domain skipped: {url}")
                continue
            targets.append(url)

        if not targets:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def _bounded_scrape(url: str) -> ScrapedPage:
            async with semaphore:
                return await self._scrape_single(url)

        pages = await asyncio.gather(*[_bounded_scrape(url) for url in targets])

        success_count = sum(1 for p in pages if p.success)
        logger.info(f"[WebScraper] Completed: {success_count}/{len(pages)} successful")
        return list(pages)

    async def _scrape_single(self, url: str) -> ScrapedPage:
        """Scrape a single URL."""
        domain = urlparse(url).netloc.replace("www.", "")

        try:
            async with httpx.AsyncClient(
                headers=self.DEFAULT_HEADERS,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                html = response.text

            if not html or len(html) < 100:
                return ScrapedPage(url=url, domain=domain, success=False, error="Empty response")

            title, content = self._extract_content(html, url)

            if not content or len(content.strip()) < 50:
                return ScrapedPage(url=url, domain=domain, title=title, success=False, error="No meaningful content extracted")

            if len(content) > self.max_content:
                content = content[:self.max_content] + "\n\n[Content truncated...]"

            return ScrapedPage(url=url, title=title, content=content, domain=domain, success=True)

        except httpx.TimeoutException:
            return ScrapedPage(url=url, domain=domain, success=False, error="Timeout")
        except httpx.HTTPStatusError as e:
            return ScrapedPage(url=url, domain=domain, success=False, error=f"HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            return ScrapedPage(url=url, domain=domain, success=False, error=str(e)[:200])

    def _extract_content(self, html: str, url: str) -> Tuple[str, str]:
        """Returns (title, content) extracted from raw HTML."""
        title, content = self._extract_with_trafilatura(html, url)
        if not content:
            title, content = self._extract_with_readability(html, url, title)
        if not content:
            title, content = self._extract_with_soup(html, title)
        return title, self._clean_text(content)

    def _extract_with_trafilatura(self, html: str, url: str) -> Tuple[str, str]:
        try:
            extracted = trafilatura.extract(
                html,
                url=url,
                include_comments=False,
                include_tables=True,
                favor_recall=True,
            )
            if not extracted or len(extracted.strip()) < self.MIN_EXTRACTED_CHARS:
                return "", ""
            metadata = trafilatura.extract_metadata(html)
        except Exception as e:
            logger.debug(f"[WebScraper] trafilatura failed for {url}: {e}")
            return "", ""
        return (metadata.title or "") if metadata else "", extracted

    def _extract_with_readability(self, html: str, url: str, title: str) -> Tuple[str, str]:
        try:
            document = ReadabilityDocument(html)
            summary = BeautifulSoup(document.summary(), "html.parser").get_text(separator="\n", strip=True)
            title = title or document.short_title()
        except Exception as e:
            logger.debug(f"[WebScraper] readability failed for {url}: {e}")
            return title, ""
        if len(summary) < self.MIN_EXTRACTED_CHARS:
            return title, ""
        return title, summary

    def _extract_with_soup(self, html: str, title: str) -> Tuple[str, str]:
        soup = BeautifulSoup(html, "html.parser")

        title_tag = soup.find("title")
        if title_tag and not title:
            title = title_tag.get_text(strip=True)

        # Remove noise elements
        for tag in soup(["script", "style", "nav", "footer", "header",
                         "aside", "form", "iframe", "noscript"]):
            tag.decompose()

        main_content = soup.find("article") or soup.find("main") or soup.find("div", class_=re.compile(r"content|article|post"))
        if main_content:
            return title, main_content.get_text(separator="\n", strip=True)

        body = soup.find("body")
        return title, body.get_text(separator="\n", strip=True) if body else ""

    def _clean_text(self, text: str) -> str:
        """Clean extracted text by removing excessive whitespace and noise."""
        if not text:
            return ""

        text = re.sub(r'\n{3,}', '\n\n', text)
        text = re.sub(r'[ \t]{2,}', ' ', text)

        # Very short lines are usually navigation leftovers
        lines = [line.strip() for line in text.split('\n')]
        return '\n'.join(line for line in lines if len(line) > 3 or line == "").strip()

    def is_blocked(self, url: str) -> bool:
        """Check if a URL's domain is in the blocklist."""
        domain = urlparse(url).netloc.lower()
        return any(domain == blocked or domain.endswith("." + blocked) for blocked in self.BLOCKED_DOMAINS)
