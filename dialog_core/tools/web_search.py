"""web_search 工具：通过 DuckDuckGo 的 HTML 页面检索实时信息。

结果用正则从 HTML 中抽取（标题、链接、摘要），最多 5 条，
格式化为纯文本交给模型。网络错误以文本形式返回，而不是抛出异常。
"""

import html as html_lib
import re
from typing import Any, Dict, List, NamedTuple

import httpx

from dialog_core.infrastructure.logging.logger import logger
from .definitions import ToolDef, ToolParam


SEARCH_URL = "https://html.duckduckgo.com/html/"
MAX_RESULTS = 5
SEARCH_TIMEOUT = 10.0

_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

_RESULT_BLOCK = re.compile(r'<div class="result[^"]*">(.*?)</div>\s*</div>', re.DOTALL)
_TITLE = re.compile(r'<a[^>]*class="[^"]*result__a[^"]*"[^>]*>(.*?)</a>', re.DOTALL)
_HREF = re.compile(r'<a[^>]*href="([^"]+)"')
_SNIPPET = re.compile(r'<a[^>]*class="[^"]*result__snippet[^"]*"[^>]*>(.*?)</a>', re.DOTALL)
_TAG = re.compile(r"<[^>]+>")


class SearchResult(NamedTuple):
    title: str
    url: str
    snippet: str


WEB_SEARCH_DEF = ToolDef(
    name="web_search",
    description=(
        "Search the internet for up-to-date information: current events, facts that may be "
        "outdated in the model's knowledge, song lyrics and similar."
    ),
    params={
        "query": ToolParam(
            name="query",
            description="Search query",
            required=True,
            schema={"type": "string"},
        )
    },
)


def _clean_html(raw: str) -> str:
    if not raw:
        return ""
    return html_lib.unescape(_TAG.sub("", raw)).replace("\xa0", " ").strip()


def parse_results(page: str, limit: int = MAX_RESULTS) -> List[SearchResult]:
    results: List[SearchResult] = []
    for block in _RESULT_BLOCK.finditer(page):
        body = block.group(1)
        title_match = _TITLE.search(body)
        href_match = _HREF.search(body)
        snippet_match = _SNIPPET.search(body)
        title = _clean_html(title_match.group(1)) if title_match else ""
        url = href_match.group(1).strip() if href_match else ""
        snippet = _clean_html(snippet_match.group(1)) if snippet_match else ""
        if title and url:
            results.append(SearchResult(title=title, url=url, snippet=snippet))
        if len(results) >= limit:
            break
    return results


def format_results(results: List[SearchResult]) -> str:
    lines = ["Web search results:", ""]
    for i, result in enumerate(results, start=1):
        lines.append(f"{i}. {result.title}")
        lines.append(f"   URL: {result.url}")
        if result.snippet:
            lines.append(f"   Snippet: {result.snippet}")
        lines.append("")
    return "\n".join(lines)


async def web_search(args: Dict[str, Any]) -> str:
    query = str(args.get("query") or "").strip()
    if not query:
        return "error: search query is empty"
    logger.info("web_search", extra={"extra": {"query": query}})
    try:
        async with httpx.AsyncClient(timeout=SEARCH_TIMEOUT, follow_redirects=True) as client:
            resp = await client.get(SEARCH_URL, params={"q": query}, headers=_HEADERS)
    except httpx.RequestError as e:
        logger.error("web_search failed", extra={"extra": {"query": query, "error": str(e)}})
        return f"error: web search failed: {e}"
    if resp.status_code >= 400:
        return f"error: web search returned HTTP {resp.status_code}"
    results = parse_results(resp.text)
    if not results:
        return "No search results found. Try a different query."
    return format_results(results)
