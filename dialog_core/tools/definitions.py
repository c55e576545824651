"""工具数据结构定义。

这些 dataclass 描述了“工具调用”的 schema，用于将可用工具列表暴露给 LLM。
模型触发的调用与结果见 domain.models 中的 ToolInvocation / ToolResult。
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List


@dataclass
class ToolParam:
    """单个工具参数的定义。"""

    name: str
    description: str
    required: bool
    schema: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolDef:
    """一个可供 LLM 调用的工具定义。"""

    name: str
    description: str
    params: Dict[str, ToolParam] = field(default_factory=dict)

    def json_schema(self) -> Dict[str, Any]:
        """生成 parameters 字段使用的 JSON Schema。"""

        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in self.params.items():
            schema = param.schema or {"type": "string"}
            if param.description:
                schema = {**schema, "description": param.description}
            properties[name] = schema
            if param.required:
                required.append(name)
        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }
