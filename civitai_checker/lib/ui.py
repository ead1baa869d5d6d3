"""
交互式 UI 工具模块

输入提示基于 prompt_toolkit 的异步接口（命令运行在事件循环中），
输出通知基于 rich。通知只做展示，失败不会中断命令。
"""
from typing import Dict, List, Optional, Sequence, Tuple

from prompt_toolkit import PromptSession
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


console = Console()

# 级别 -> (颜色, 图标)
_LEVELS: Dict[str, Tuple[str, str]] = {
    "info": ("cyan", "ℹ"),
    "success": ("green", "✓"),
    "warning": ("yellow", "⚠"),
    "error": ("red", "✗"),
}

_YES = ("y", "yes", "是", "确认")


# ============================================================
# 输入交互
# ============================================================
async def prompt_input(message: str, default: str = "") -> str:
    """输入提示，直接回车使用默认值"""
    suffix = f" [{default}]" if default else ""
    session: PromptSession[str] = PromptSession()
    answer = await session.prompt_async(f"{message}{suffix}: ", default=default)
    return answer.strip() or default


async def prompt_confirm(message: str, default: bool = True) -> bool:
    """确认提示 (y/n)"""
    session: PromptSession[str] = PromptSession()
    answer = await session.prompt_async(f"{message} {'[Y/n]' if default else '[y/N]'}: ")
    answer = answer.strip().lower()
    return answer in _YES if answer else default


async def prompt_directory(default: str) -> Optional[str]:
    """询问保存目录

    Returns:
        用户确认的目录；Ctrl+C / Ctrl+D 视为取消，返回 None
    """
    try:
        return await prompt_input("保存目录", default=default)
    except (KeyboardInterrupt, EOFError):
        return None


# ============================================================
# 通知
# ============================================================
def notify(message: str, level: str = "info") -> None:
    color, icon = _LEVELS.get(level, _LEVELS["info"])
    console.print(f"[{color}]{icon}[/{color}] {message}")


def print_info(message: str) -> None:
    notify(message, "info")


def print_success(message: str) -> None:
    notify(message, "success")


def print_warning(message: str) -> None:
    notify(message, "warning")


def print_error(message: str) -> None:
    notify(message, "error")


def print_panel(title: str, content: str, style: str = "blue") -> None:
    console.print(Panel(content, title=title, border_style=style))


def print_table(title: str, columns: Sequence[str], rows: List[List[str]]) -> None:
    """打印表格，空单元格显示为 -"""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*[cell if cell else "-" for cell in row])
    console.print(table)
