"""
当前模型版本识别

  1. URL 检查: 查询参数 modelVersionId 能解析为整数时立即返回
  2. 被动扫描: 否则等待固定时长，让页面自身的请求先发生，
     再在已发生的网络请求中查找 modelVersion.getById 调用并提取其中的 "id"
"""
import asyncio
import re
from typing import Awaitable, Callable, Iterable, Optional
from urllib.parse import parse_qs, unquote, urlparse

from civitai_checker.core.ports import IPageState
from civitai_checker.core.utils import logger

VERSION_QUERY_PARAM = "modelVersionId"
VERSION_API_SIGNATURE = "modelVersion.getById"
DEFAULT_SCAN_DELAY = 1.0

_ID_PATTERN = re.compile(r'"id"\s*:\s*(\d+)')

Sleep = Callable[[float], Awaitable[None]]


def version_id_from_url(url: str) -> Optional[int]:
    """从 URL 查询参数中读取版本 ID"""
    values = parse_qs(urlparse(url).query).get(VERSION_QUERY_PARAM)
    if not values:
        return None
    try:
        return int(values[0].strip())
    except ValueError:
        return None


def version_id_from_entries(entries: Iterable[str]) -> Optional[int]:
    """在请求记录中查找版本查询调用并提取 ID（取第一个匹配）"""
    for url in entries:
        if VERSION_API_SIGNATURE not in url:
            continue
        decoded = unquote(url)
        logger.debug(f"  -> [Version] 发现请求: {decoded}")
        match = _ID_PATTERN.search(decoded)
        if match:
            return int(match.group(1))
    return None


class VersionIdentifier:
    """当前页面的模型版本识别器"""

    def __init__(self, page: IPageState, scan_delay: float = DEFAULT_SCAN_DELAY, sleep: Sleep = asyncio.sleep):
        self.page = page
        self.scan_delay = scan_delay
        self._sleep = sleep

    async def resolve_current_version_id(self) -> Optional[int]:
        """识别当前版本 ID，无法识别返回 None"""
        version_id = version_id_from_url(self.page.location)
        if version_id is not None:
            logger.debug(f"  -> [Version] 从 URL 获取版本 ID: {version_id}")
            return version_id

        logger.debug(f"  -> [Version] URL 中无 {VERSION_QUERY_PARAM}，等待 {self.scan_delay}s 后扫描请求记录...")
        await self._sleep(self.scan_delay)

        version_id = version_id_from_entries(self.page.resource_entries())
        if version_id is None:
            logger.debug("  -> [Version] 未找到版本 ID")
        else:
            logger.debug(f"  -> [Version] 从请求记录提取版本 ID: {version_id}")
        return version_id
