"""Research tools: webSearch (Brave Search API) and webFetch.

Registered only when a Brave key is configured. Uses its own httpx
client, never the model client that carries API credentials.
"""

from __future__ import annotations

import html as html_module
import ipaddress
import logging
import re
import socket
import time
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx

from steward.config import Settings
from steward.tools.registry import Tool, ToolContext, ToolParameter, ToolRegistry, ToolResult, ToolSchema

logger = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"

# Blocked IP ranges for SSRF protection
_BLOCKED_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),  # Loopback
    ipaddress.ip_network("10.0.0.0/8"),  # RFC1918
    ipaddress.ip_network("172.16.0.0/12"),  # RFC1918
    ipaddress.ip_network("192.168.0.0/16"),  # RFC1918
    ipaddress.ip_network("169.254.0.0/16"),  # Link-local
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),  # IPv6 loopback
    ipaddress.ip_network("fc00::/7"),  # IPv6 unique local
    ipaddress.ip_network("fe80::/10"),  # IPv6 link-local
]

# Internal service names on the compose network
_BLOCKED_HOSTNAMES = {"localhost", "postgres", "steward", "redis"}

RESEARCH_TOOLS = ["webSearch", "webFetch"]

_MAX_REDIRECTS = 5
_MAX_FETCH_CHARS = 50000


def is_url_safe(url: str) -> tuple[bool, str]:
    """Check a URL against SSRF rules by resolving its host.

    Returns (is_safe, error_message).
    """
    parsed = urlparse(url)
    hostname = parsed.hostname
    if not hostname:
        return False, "Could not parse hostname from URL"
    if hostname.lower() in _BLOCKED_HOSTNAMES:
        return False, f"Blocked hostname: {hostname}"

    try:
        addr_infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror:
        return False, f"Could not resolve hostname: {hostname}"

    for addr_info in addr_infos:
        try:
            ip = ipaddress.ip_address(addr_info[4][0])
        except ValueError:
            return False, f"Unparseable address for {hostname}"
        for network in _BLOCKED_NETWORKS:
            if ip in network:
                return False, f"URL resolves to blocked IP range ({network})"
    return True, ""


def extract_readable(html: str) -> str:
    """Strip markup and boilerplate elements from HTML."""
    text = re.sub(
        r"<(script|style|noscript|nav|header|footer)[^>]*>.*?</\1>",
        "",
        html,
        flags=re.DOTALL | re.IGNORECASE,
    )
    text = re.sub(r"<!--.*?-->", "", text, flags=re.DOTALL)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html_module.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


class DailySearchLimit:
    """In-memory daily counter, resets on restart and at midnight local time."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self._date = ""
        self._count = 0

    def acquire(self) -> str | None:
        """Count one search. Returns an error message when the limit is reached."""
        today = time.strftime("%Y-%m-%d")
        if self._date != today:
            self._date = today
            self._count = 0
        if self._count >= self.limit:
            return f"Daily web search limit reached ({self.limit}). Resets tomorrow."
        self._count += 1
        if self._count > int(self.limit * 0.8):
            logger.warning("Web search rate limit at %d/%d", self._count, self.limit)
        return None


class WebResearch:
    """Handlers for webSearch and webFetch sharing one httpx client."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http
        self._limit = DailySearchLimit(settings.web_search_daily_limit)

    async def search(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        query = params["query"]
        count = max(1, min(int(params.get("count") or 5), 10))

        rate_error = self._limit.acquire()
        if rate_error:
            return ToolResult.fail(rate_error)

        request: dict[str, Any] = {"q": query, "count": count}
        freshness = {"day": "pd", "week": "pw", "month": "pm"}.get(params.get("freshness") or "")
        if freshness:
            request["freshness"] = freshness

        try:
            response = await self._http.get(
                BRAVE_SEARCH_URL,
                params=request,
                headers={
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip",
                    "X-Subscription-Token": self._settings.brave_search_api_key,
                },
                timeout=10,
            )
        except httpx.TimeoutException:
            return ToolResult.fail("Web search timed out. Try again.")
        except httpx.HTTPError as e:
            return ToolResult.fail(f"Could not connect to search service: {e}")

        if response.status_code != 200:
            return ToolResult.fail(f"Search failed (HTTP {response.status_code})")

        results = [
            {
                "title": item.get("title", ""),
                "url": item.get("url", ""),
                "snippet": item.get("description", ""),
            }
            for item in response.json().get("web", {}).get("results", [])[:count]
        ]
        logger.info("Agent %s searched %r (%d results)", context.agent_id.hex[:8], query, len(results))
        return ToolResult.ok({"query": query, "results": results})

    async def fetch(self, params: dict[str, Any], context: ToolContext) -> ToolResult:
        url = params["url"]
        if not url.startswith(("http://", "https://")):
            return ToolResult.fail("URL must start with http:// or https://")

        is_safe, error = is_url_safe(url)
        if not is_safe:
            return ToolResult.fail(f"Blocked: {error}")

        max_chars = min(int(params.get("maxChars") or self._settings.web_fetch_max_chars), _MAX_FETCH_CHARS)

        # Manual redirects so every hop passes the SSRF check
        current_url = url
        try:
            for _ in range(_MAX_REDIRECTS + 1):
                response = await self._http.get(
                    current_url,
                    headers={"User-Agent": "steward/0.1 (research agent)"},
                    follow_redirects=False,
                    timeout=15,
                )
                if response.status_code not in (301, 302, 303, 307, 308):
                    break
                location = response.headers.get("location", "")
                if not location:
                    break
                redirect_url = urljoin(current_url, location)
                redirect_safe, redirect_error = is_url_safe(redirect_url)
                if not redirect_safe:
                    return ToolResult.fail(f"Blocked redirect to unsafe URL: {redirect_error}")
                current_url = redirect_url
            else:
                return ToolResult.fail(f"Too many redirects (max {_MAX_REDIRECTS})")
        except httpx.TimeoutException:
            return ToolResult.fail(f"Fetch timed out for: {url}")
        except httpx.HTTPError as e:
            return ToolResult.fail(f"Could not fetch {url}: {e}")

        content_type = response.headers.get("content-type", "")
        is_text = any(t in content_type for t in ("text/", "application/json", "application/xml", "application/xhtml"))
        if content_type and not is_text:
            return ToolResult.fail(f"Cannot extract text from binary content (content-type: {content_type})")

        text = extract_readable(response.text) if "html" in content_type else response.text
        truncated = len(text) > max_chars
        if truncated:
            text = text[:max_chars]
        return ToolResult.ok({"url": current_url, "content": text, "truncated": truncated})


def register_web_tools(registry: ToolRegistry, settings: Settings, http: httpx.AsyncClient) -> bool:
    """Register webSearch and webFetch. Returns False when no Brave key is set."""
    if not settings.brave_search_api_key:
        logger.info("BRAVE_SEARCH_API_KEY not set, research tools disabled")
        return False

    research = WebResearch(settings, http)
    registry.register(Tool(
        ToolSchema(
            name="webSearch",
            description="Search the web for current information. Returns titles, URLs, and snippets.",
            parameters=[
                ToolParameter("query", "string", "Search query string"),
                ToolParameter("count", "integer", "Number of results (1-10, default 5)", required=False),
                ToolParameter(
                    "freshness",
                    "string",
                    "Filter by recency, omit for all time",
                    required=False,
                    enum=["day", "week", "month"],
                ),
            ],
        ),
        research.search,
    ))
    registry.register(Tool(
        ToolSchema(
            name="webFetch",
            description="Fetch a URL and extract its readable text content.",
            parameters=[
                ToolParameter("url", "string", "URL to fetch (http or https)"),
                ToolParameter("maxChars", "integer", "Maximum characters to return (max 50000)", required=False),
            ],
        ),
        research.fetch,
    ))
    return True
