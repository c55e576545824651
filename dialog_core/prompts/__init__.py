"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system prompt 文本，
也可以通过 settings.system_prompt_file 指定自定义文件。
文件不存在或读取失败时退回到内置的默认提示词。
"""

from pathlib import Path
from typing import Optional, Union

from dialog_core.infrastructure.logging.logger import logger


PROMPTS_DIR = Path(__file__).resolve().parent
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. Answer briefly and to the point."


def load_system_prompt(path: Optional[Union[str, Path]] = None, locale: str = "en") -> str:
    """加载系统提示词文本。"""

    fname = Path(path).expanduser() if path else PROMPTS_DIR / locale / "assistant_system.md"
    try:
        text = fname.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning(
            "System prompt file not readable, using default",
            extra={"extra": {"path": str(fname), "error": str(e)}},
        )
        return DEFAULT_SYSTEM_PROMPT
    if not text:
        logger.warning("System prompt file is empty, using default", extra={"extra": {"path": str(fname)}})
        return DEFAULT_SYSTEM_PROMPT
    logger.info("Loaded system prompt", extra={"extra": {"path": str(fname), "length": len(text)}})
    return text
