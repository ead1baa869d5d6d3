"""
下载编排器

  元数据 -> 文件名 -> 下载地址 -> 交给 Download Sink -> 写入缓存

Sink 的响应显式分为三种结果:
  - CONFIRMED:             Sink 确认已开始下载
  - FAILED:                Sink 明确返回失败或抛出异常，向上抛出 DownloadFailedError，缓存不变
  - TIMED_OUT_BUT_STARTED: 超时未确认（例如用户停留在保存位置对话框），
                           请求已经发出，按已开始处理，照常写入缓存
不做自动重试。
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from civitai_checker.core.errors import DownloadFailedError, MetadataUnavailableError
from civitai_checker.core.ports import IDownloadSink
from civitai_checker.lib.cache.schema import ModelRecord
from civitai_checker.lib.cache.store import CacheStore
from civitai_checker.lib.download.civitai import DEFAULT_API_BASE, MetadataResolver, download_url
from civitai_checker.lib.download.settings import DownloadSettings, SettingsStore
from civitai_checker.lib.download.template import generate_file_name

logger = logging.getLogger("civitai_checker")

DEFAULT_HANDOFF_TIMEOUT = 30.0


class HandoffStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMED_OUT_BUT_STARTED = "timed_out_but_started"


@dataclass
class HandoffResult:
    """一次交接的结果"""
    status: HandoffStatus
    download_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_response(cls, response: Any) -> "HandoffResult":
        """解析 Sink 响应消息"""
        if isinstance(response, dict) and response.get("success"):
            download_id = response.get("downloadId")
            return cls(HandoffStatus.CONFIRMED, download_id=None if download_id is None else str(download_id))
        error = response.get("error") if isinstance(response, dict) else None
        return cls(HandoffStatus.FAILED, error=error or "Download failed")

    @classmethod
    def from_exception(cls, exc: BaseException) -> "HandoffResult":
        """Sink 抛出异常视为失败"""
        return cls(HandoffStatus.FAILED, error=str(exc) or type(exc).__name__)


@dataclass
class DownloadRequest:
    """发送给 Download Sink 的下载请求（一次性，不持久化）"""
    url: str
    file_name: str
    version_id: int
    model_info: ModelRecord
    settings: DownloadSettings

    def to_message(self) -> Dict[str, Any]:
        """序列化为跨上下文传递的消息（不共享任何对象）"""
        return {
            "action": "download",
            "url": self.url,
            "fileName": self.file_name,
            "versionId": self.version_id,
            "modelInfo": self.model_info.to_storage(),
            "settings": self.settings.to_storage(),
            "saveAs": self.settings.always_ask_save_location,
        }


@dataclass
class DownloadOutcome:
    """download_model 的返回值"""
    result: HandoffResult
    file_name: str
    url: str
    cache_key: Optional[str] = None

    @property
    def timed_out(self) -> bool:
        return self.result.status == HandoffStatus.TIMED_OUT_BUT_STARTED


class DownloadOrchestrator:
    """下载编排器"""

    def __init__(
        self,
        resolver: MetadataResolver,
        cache: CacheStore,
        settings: SettingsStore,
        sink: IDownloadSink,
        api_base: str = DEFAULT_API_BASE,
        handoff_timeout: float = DEFAULT_HANDOFF_TIMEOUT,
    ) -> None:
        self._resolver = resolver
        self._cache = cache
        self._settings = settings
        self._sink = sink
        self._api_base = api_base
        self._handoff_timeout = handoff_timeout
        # 超时后仍在进行的交接，保留引用直到结束
        self._inflight: Set["asyncio.Task[Dict[str, Any]]"] = set()

    def build_file_name(self, model_info: ModelRecord, settings: DownloadSettings) -> str:
        return generate_file_name(
            model_info,
            settings.file_name_template,
            extension_mode=settings.extension_mode,
            replace_spaces=settings.replace_spaces,
        )

    async def _hand_off(self, request: DownloadRequest) -> HandoffResult:
        """发送请求并等待确认

        超时只停止等待，不取消 Sink 端的处理：传输可能已经开始。
        """
        task = asyncio.ensure_future(self._sink.handle(request.to_message()))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

        try:
            response = await asyncio.wait_for(asyncio.shield(task), timeout=self._handoff_timeout)
        except asyncio.TimeoutError:
            return HandoffResult(HandoffStatus.TIMED_OUT_BUT_STARTED)
        except Exception as e:
            logger.error(f"  -> [Download] Sink 处理异常: {e!r}")
            return HandoffResult.from_exception(e)
        return HandoffResult.from_response(response)

    async def download_model(self, version_id: int, model_info: Optional[ModelRecord] = None) -> DownloadOutcome:
        """下载指定模型版本

        Raises:
            MetadataUnavailableError: 未提供 model_info 且无法获取元数据
            DownloadFailedError:      Sink 返回失败，消息为 Sink 给出的错误
        """
        info = model_info or await self._resolver.get_model_info(version_id)
        if info is None:
            raise MetadataUnavailableError(f"无法获取模型信息 (versionId={version_id})")

        settings = self._settings.current
        file_name = self.build_file_name(info, settings)
        url = download_url(self._api_base, version_id, prefer_safetensor=not settings.download_primary_file)

        logger.info(f"  -> [Download] 开始下载: {file_name}")
        logger.debug(f"  -> [Download] url={url} versionId={version_id}")

        request = DownloadRequest(
            url=url,
            file_name=file_name,
            version_id=version_id,
            model_info=info,
            settings=settings,
        )
        result = await self._hand_off(request)

        if result.status == HandoffStatus.FAILED:
            logger.error(f"  -> [Download] 下载失败: {result.error}")
            raise DownloadFailedError(result.error or "Download failed")

        if result.status == HandoffStatus.TIMED_OUT_BUT_STARTED:
            logger.info("  -> [Download] 等待确认超时（可能停留在保存位置对话框），按已开始下载处理")
        else:
            logger.info(f"  -> [Download] 下载已开始 (downloadId={result.download_id})")

        key: Optional[str] = None
        if settings.auto_add_to_cache:
            key = await self._cache.add(info)

        return DownloadOutcome(result=result, file_name=file_name, url=url, cache_key=key)

    async def drain(self) -> List[HandoffResult]:
        """等待所有超时后仍在进行的交接结束

        Returns:
            这些交接的最终结果（Sink 抛出的异常转换为 FAILED）
        """
        if not self._inflight:
            return []

        responses = await asyncio.gather(*list(self._inflight), return_exceptions=True)
        results: List[HandoffResult] = []
        for response in responses:
            if isinstance(response, BaseException):
                result = HandoffResult.from_exception(response)
            else:
                result = HandoffResult.from_response(response)
            if result.status == HandoffStatus.FAILED:
                logger.warning(f"  -> [Download] 超时后的交接最终失败: {result.error}")
            results.append(result)
        return results
