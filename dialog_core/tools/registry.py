"""工具注册表。

ToolRegistry 把 ToolDef 与实际执行函数绑定在一起：

- list_tools(): 以 {name, description, json_schema} 形式列出工具，供展示或日志使用。
- definitions(): 返回 ToolDef 列表，由 Provider 适配器序列化为各家 schema。
- execute(name, args): 执行工具并返回文本结果；名称不存在时抛出 ToolNotFoundError。

工具函数可以是普通函数，也可以是协程函数。
"""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from dialog_core.domain.exceptions import ToolNotFoundError
from dialog_core.infrastructure.logging.logger import logger
from .definitions import ToolDef


ToolFunc = Callable[[Dict[str, Any]], Union[str, Awaitable[str]]]


@dataclass
class RegisteredTool:
    definition: ToolDef
    func: ToolFunc


class ToolRegistry:
    def __init__(self, tools: Optional[List[RegisteredTool]] = None):
        self._tools: Dict[str, RegisteredTool] = {}
        for tool in tools or []:
            self.register(tool.definition, tool.func)

    def register(self, definition: ToolDef, func: ToolFunc) -> None:
        self._tools[definition.name] = RegisteredTool(definition=definition, func=func)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": tool.definition.name,
                "description": tool.definition.description,
                "json_schema": tool.definition.json_schema(),
            }
            for tool in self._tools.values()
        ]

    def definitions(self) -> List[ToolDef]:
        return [tool.definition for tool in self._tools.values()]

    async def execute(self, name: str, args: Dict[str, Any]) -> str:
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Tool not found", extra={"extra": {"tool_name": name}})
            raise ToolNotFoundError(code="TOOL_NOT_FOUND", message=f"tool {name!r} not found")
        logger.info("Executing tool", extra={"extra": {"tool_name": name, "tool_args": args}})
        result = tool.func(args)
        if inspect.isawaitable(result):
            result = await result
        return "" if result is None else str(result)


def default_registry(enable_web_search: bool = True) -> ToolRegistry:
    """构造默认工具注册表。"""

    from .web_search import WEB_SEARCH_DEF, web_search

    registry = ToolRegistry()
    if enable_web_search:
        registry.register(WEB_SEARCH_DEF, web_search)
    return registry
