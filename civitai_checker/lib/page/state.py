"""
页面状态实现

  - StaticPageState: 内存中的地址 + 请求记录（测试、直接传入 URL 时使用）
  - HarPageState:    从浏览器开发者工具导出的 HAR 文件读取请求记录
"""
import json
from pathlib import Path
from typing import Any, Iterable, List, Optional

from civitai_checker.core.ports import IPageState
from civitai_checker.core.utils import logger


class StaticPageState(IPageState):
    """内存页面状态"""

    def __init__(self, location: str, entries: Optional[Iterable[str]] = None):
        self._location = location
        self._entries: List[str] = list(entries or [])

    @property
    def location(self) -> str:
        return self._location

    def navigate(self, url: str) -> None:
        self._location = url

    def add_entry(self, url: str) -> None:
        self._entries.append(url)

    def resource_entries(self) -> List[str]:
        return list(self._entries)


def read_har_urls(har_path: Path) -> List[str]:
    """读取 HAR 文件中所有请求的 URL（log.entries[].request.url）

    文件缺失或格式无效时返回空列表。
    """
    if not har_path.exists():
        logger.debug(f"  -> [HAR] 文件不存在: {har_path}")
        return []
    try:
        data: Any = json.loads(har_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"  -> [HAR] 无法解析 {har_path}: {e}")
        return []

    log = data.get("log") if isinstance(data, dict) else None
    entries = log.get("entries") if isinstance(log, dict) else None
    if not isinstance(entries, list):
        logger.warning(f"  -> [HAR] 缺少 log.entries: {har_path}")
        return []

    urls: List[str] = []
    for entry in entries:
        request = entry.get("request") if isinstance(entry, dict) else None
        url = request.get("url") if isinstance(request, dict) else None
        if isinstance(url, str):
            urls.append(url)
    return urls


class HarPageState(IPageState):
    """基于 HAR 文件的页面状态

    每次扫描都重新读取文件，开发者工具重新导出后即可看到新请求。
    """

    def __init__(self, har_path: Path, location: str):
        self.har_path = har_path
        self._location = location

    @property
    def location(self) -> str:
        return self._location

    def navigate(self, url: str) -> None:
        self._location = url

    def resource_entries(self) -> List[str]:
        return read_har_urls(self.har_path)
