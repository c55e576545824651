"""超长消息切分。

传输层对单条消息有硬上限（默认 4096 字符），超出时把文本切成多段，
每段加上 "(i/n)\\n\\n" 编号前缀后依次发送。

切分规则：
- 不超过上限的文本原样作为一段，不加前缀。
- 否则每段正文最多 max_part_length - prefix_reserve 个字符；非最后一段会在窗口
  末尾 300 个字符内依次寻找空行、换行、空格作为断点，分隔符保留在当前段末尾。
- 去掉前缀后按顺序拼接各段正文，与原文完全一致。
- total 是实际切出的段数，而不是 ceil(len / (max_part_length - prefix_reserve))：
  断点前移可能多出一段，按实际段数编号才不会出现 "(4/3)" 这样的前缀。
- 若实际前缀比 prefix_reserve 更长（段数很多时），扩大预留后重新切分，
  保证每段总长不超过上限。
"""

import re
from typing import List

from dialog_core.domain.models import MessageChunk


MAX_PART_LENGTH = 4096
PREFIX_RESERVE = 30
BREAK_SEARCH_WINDOW = 300

_PREFIX_RE = re.compile(r"^\(\d+/\d+\)\n\n")


def part_prefix(index: int, total: int) -> str:
    return f"({index}/{total})\n\n"


def strip_prefix(text: str) -> str:
    """去掉开头的 "(i/n)\\n\\n" 编号前缀（若有）。"""

    return _PREFIX_RE.sub("", text, count=1)


def _find_break(window: str) -> int:
    """返回窗口内的断点位置（断点之前的内容留在当前段），找不到时返回 -1。"""

    search_start = max(0, len(window) - BREAK_SEARCH_WINDOW)
    pos = window.rfind("\n\n", search_start)
    if pos != -1:
        return pos + 2
    pos = window.rfind("\n", search_start)
    if pos != -1:
        return pos + 1
    pos = window.rfind(" ", search_start)
    if pos != -1:
        return pos + 1
    return -1


def _cut(text: str, body_limit: int) -> List[str]:
    bodies: List[str] = []
    offset = 0
    length = len(text)
    while offset < length:
        end = min(offset + body_limit, length)
        if end < length:
            brk = _find_break(text[offset:end])
            if brk > 0:
                end = offset + brk
        bodies.append(text[offset:end])
        offset = end
    return bodies


def split(
    text: str,
    max_part_length: int = MAX_PART_LENGTH,
    prefix_reserve: int = PREFIX_RESERVE,
) -> List[MessageChunk]:
    """把 text 切分为有序的 MessageChunk 列表。"""

    if max_part_length <= prefix_reserve or prefix_reserve < 0:
        raise ValueError("max_part_length must be greater than prefix_reserve")
    if not text:
        return []
    if len(text) <= max_part_length:
        return [MessageChunk(index=1, total=1, body=text)]

    reserve = prefix_reserve
    while True:
        body_limit = max_part_length - reserve
        if body_limit < 1:
            raise ValueError("max_part_length is too small to fit a part prefix")
        bodies = _cut(text, body_limit)
        total = len(bodies)
        widest = len(part_prefix(total, total))
        if widest <= reserve:
            break
        reserve = widest

    return [
        MessageChunk(index=i, total=total, body=body, prefix=part_prefix(i, total))
        for i, body in enumerate(bodies, start=1)
    ]
