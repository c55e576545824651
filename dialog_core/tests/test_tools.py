import asyncio

import httpx
import pytest

from dialog_core.domain.exceptions import ToolNotFoundError
from dialog_core.tools.definitions import ToolDef, ToolParam
from dialog_core.tools.registry import ToolRegistry, default_registry
from dialog_core.tools.web_search import format_results, parse_results, web_search


_PAGE = """
<div class="result results_links results_links_deep web-result ">
  <div class="links_main links_deep result__body">
    <h2 class="result__title"><a rel="nofollow" class="result__a" href="https://example.com/a">Python &amp; asyncio</a></h2>
    <a class="result__snippet" href="https://example.com/a">Learn <b>asyncio</b>&nbsp;today</a>
  </div>
</div>
<div class="result results_links results_links_deep web-result ">
  <div class="links_main links_deep result__body">
    <h2 class="result__title"><a rel="nofollow" class="result__a" href="https://example.com/b">Second hit</a></h2>
  </div>
</div>
"""


def test_tool_def_json_schema():
    tool = ToolDef(
        name="web_search",
        description="search",
        params={
            "query": ToolParam(name="query", description="Query", required=True, schema={"type": "string"}),
            "limit": ToolParam(name="limit", description="", required=False, schema={"type": "integer"}),
        },
    )
    schema = tool.json_schema()
    assert schema["type"] == "object"
    assert schema["required"] == ["query"]
    assert schema["properties"]["query"] == {"type": "string", "description": "Query"}
    assert schema["properties"]["limit"] == {"type": "integer"}


def test_registry_executes_sync_and_async_tools():
    registry = ToolRegistry()

    async def shout(args):
        return args["text"].upper()

    registry.register(ToolDef(name="echo", description="echo"), lambda args: args["text"])
    registry.register(ToolDef(name="shout", description="shout"), shout)

    assert len(registry) == 2
    assert "echo" in registry
    assert [t["name"] for t in registry.list_tools()] == ["echo", "shout"]
    assert registry.list_tools()[0]["json_schema"]["type"] == "object"
    assert asyncio.run(registry.execute("echo", {"text": "hi"})) == "hi"
    assert asyncio.run(registry.execute("shout", {"text": "hi"})) == "HI"


def test_registry_unknown_tool():
    with pytest.raises(ToolNotFoundError) as exc_info:
        asyncio.run(ToolRegistry().execute("missing", {}))
    assert exc_info.value.code == "TOOL_NOT_FOUND"


def test_default_registry():
    assert [d.name for d in default_registry().definitions()] == ["web_search"]
    assert len(default_registry(enable_web_search=False)) == 0


def test_parse_results():
    results = parse_results(_PAGE)
    assert len(results) == 2
    assert results[0].title == "Python & asyncio"
    assert results[0].url == "https://example.com/a"
    assert results[0].snippet == "Learn asyncio today"
    assert results[1].snippet == ""

    text = format_results(results)
    assert "1. Python & asyncio" in text
    assert "URL: https://example.com/b" in text


def test_parse_results_limit():
    assert len(parse_results(_PAGE, limit=1)) == 1
    assert parse_results("<html>nothing here</html>") == []


def test_web_search_empty_query():
    assert asyncio.run(web_search({"query": "  "})) == "error: search query is empty"


def _patch_client(monkeypatch, text="", error=None):
    class Resp:
        status_code = 200

        def __init__(self):
            self.text = text

    class Client:
        def __init__(self, *a, **kw):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def get(self, url, params=None, **_):
            if error is not None:
                raise error
            return Resp()

    monkeypatch.setattr("httpx.AsyncClient", Client)


def test_web_search_formats_results(monkeypatch):
    _patch_client(monkeypatch, text=_PAGE)
    result = asyncio.run(web_search({"query": "asyncio"}))
    assert result.startswith("Web search results:")
    assert "Second hit" in result


def test_web_search_no_results(monkeypatch):
    _patch_client(monkeypatch, text="<html></html>")
    assert asyncio.run(web_search({"query": "zzz"})) == "No search results found. Try a different query."


def test_web_search_network_error(monkeypatch):
    _patch_client(monkeypatch, error=httpx.ConnectError("no route"))
    assert asyncio.run(web_search({"query": "asyncio"})).startswith("error: web search failed")
