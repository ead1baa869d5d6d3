"""
模型下载状态检查

  版本识别 -> 元数据 -> 缓存查询
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from civitai_checker.core.utils import logger
from civitai_checker.lib.cache.schema import ModelRecord
from civitai_checker.lib.cache.store import CacheStore
from civitai_checker.lib.download.civitai import MetadataResolver
from civitai_checker.lib.page.version import VersionIdentifier


class CheckStatus(str, Enum):
    DOWNLOADED = "downloaded"
    NOT_DOWNLOADED = "not_downloaded"
    UNRESOLVED = "unresolved"      # 无法识别版本 ID
    NO_METADATA = "no_metadata"    # 版本 ID 已识别，但元数据获取失败


@dataclass
class CheckResult:
    status: CheckStatus
    version_id: Optional[int] = None
    model_info: Optional[ModelRecord] = None
    cached: Optional[ModelRecord] = None

    @property
    def key(self) -> Optional[str]:
        return self.model_info.key if self.model_info else None


class ModelChecker:
    """检查当前页面的模型版本是否已下载"""

    def __init__(self, identifier: VersionIdentifier, resolver: MetadataResolver, cache: CacheStore):
        self.identifier = identifier
        self._resolver = resolver
        self._cache = cache

    async def check_version(self, version_id: int) -> CheckResult:
        model_info = await self._resolver.get_model_info(version_id)
        if model_info is None:
            logger.info(f"  -> [Check] 无法获取模型信息 (versionId={version_id})")
            return CheckResult(CheckStatus.NO_METADATA, version_id=version_id)

        cached = await self._cache.get(model_info.model_id, model_info.version_id)
        status = CheckStatus.DOWNLOADED if cached else CheckStatus.NOT_DOWNLOADED
        logger.debug(f"  -> [Check] {model_info.key}: {status.value}")
        return CheckResult(status, version_id=version_id, model_info=model_info, cached=cached)

    async def check(self) -> CheckResult:
        version_id = await self.identifier.resolve_current_version_id()
        if version_id is None:
            logger.info("  -> [Check] 无法确定版本 ID")
            return CheckResult(CheckStatus.UNRESOLVED)
        return await self.check_version(version_id)
