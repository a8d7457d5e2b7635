"""Fetch a web page and convert it to markdown-like text for the knowledge base.

Headings, bold text and list items are kept as markdown markers so the
section splitter can find the page structure later. Navigation, headers,
footers and scripts are dropped.

Fetch strategies, in order:
1. Crawler user agents (many sites serve them plain server-rendered HTML)
2. A desktop browser user agent
Cloudflare challenge pages are treated as failures.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import httpx
import structlog
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.app.config import get_settings

logger = structlog.get_logger(__name__)

BOT_USER_AGENTS = (
    "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
    "facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)",
)
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

_CHALLENGE_MARKERS = (
    "cf-browser-verification",
    "challenge-platform",
    "Just a moment",
    "Checking if the site connection is secure",
    "cf-turnstile",
)
_DROPPED_TAGS = ["script", "style", "noscript", "nav", "footer", "header", "aside", "form", "svg", "iframe"]
_MIN_USEFUL_CHARS = 80


class ScrapeError(Exception):
    """No strategy produced usable text for the URL."""


@dataclass(frozen=True)
class ScrapeResult:
    url: str
    title: str
    text: str
    strategy: str


def is_cloudflare_challenge(html: str) -> bool:
    return any(marker in html for marker in _CHALLENGE_MARKERS)


def html_to_markdown(html: str) -> tuple[str, str]:
    """Convert HTML to markdown-ish text. Returns (title, text)."""
    soup = BeautifulSoup(html or "", "html.parser")
    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""

    for tag in soup.find_all(_DROPPED_TAGS):
        tag.decompose()

    for br in soup.find_all("br"):
        br.replace_with("\n")
    for level in range(1, 7):
        for heading in soup.find_all(f"h{level}"):
            text = heading.get_text(" ", strip=True)
            if text:
                heading.replace_with(f"\n\n{'#' * min(level, 4)} {text}\n\n")
            else:
                heading.decompose()
    for bold in soup.find_all(["strong", "b"]):
        text = bold.get_text(" ", strip=True)
        bold.replace_with(f"**{text}**" if text else "")
    for item in soup.find_all("li"):
        item.insert_before("\n- ")
    for block in soup.find_all(["p", "div", "section", "article", "tr"]):
        block.insert_before("\n")
        block.insert_after("\n")

    body = soup.body or soup
    text = body.get_text()
    text = re.sub(r"[ \t\xa0]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return title, text.strip()


class PageScraper:
    """Fetch pages with httpx, falling back across user agents.

    Args:
        timeout: Per-request timeout in seconds.
        max_chars: Longer extracted text is truncated.
    """

    def __init__(self, timeout: float | None = None, max_chars: int | None = None):
        settings = get_settings()
        self.timeout = timeout or settings.SCRAPER_TIMEOUT
        self.max_chars = max_chars or settings.SCRAPER_MAX_CHARS

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _fetch(self, client: httpx.AsyncClient, url: str, user_agent: str) -> httpx.Response:
        return await client.get(
            url,
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
            },
        )

    async def scrape(self, url: str) -> ScrapeResult:
        """Return the page text.

        Raises:
            ScrapeError: Every strategy failed or returned too little text.
        """
        strategies = [("bot", ua) for ua in BOT_USER_AGENTS] + [("browser", BROWSER_USER_AGENT)]
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            for strategy, user_agent in strategies:
                try:
                    response = await self._fetch(client, url, user_agent)
                except httpx.HTTPError as exc:
                    logger.info("scraper.fetch_failed", url=url, strategy=strategy, error=str(exc))
                    continue
                if response.status_code >= 400:
                    logger.info("scraper.bad_status", url=url, strategy=strategy, status=response.status_code)
                    continue
                if is_cloudflare_challenge(response.text):
                    logger.info("scraper.challenge_page", url=url, strategy=strategy)
                    continue

                title, text = html_to_markdown(response.text)
                if len(text) <= _MIN_USEFUL_CHARS:
                    continue
                if len(text) > self.max_chars:
                    text = text[: self.max_chars] + "..."
                logger.info("scraper.success", url=url, strategy=strategy, chars=len(text))
                return ScrapeResult(url=url, title=title, text=text, strategy=strategy)

        raise ScrapeError(f"Could not extract content from {url}")
