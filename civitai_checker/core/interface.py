"""
核心接口定义
"""
from dataclasses import dataclass

from civitai_checker.core.ports import IDownloadSink, IKeyValueStore
from civitai_checker.lib.cache.store import CacheStore
from civitai_checker.lib.config import AppConfig
from civitai_checker.lib.download.civitai import MetadataResolver
from civitai_checker.lib.download.orchestrator import DownloadOrchestrator
from civitai_checker.lib.download.settings import SettingsStore


@dataclass
class AppContext:
    """
    应用上下文 - 组合根

    宿主能力（存储、下载执行）在启动时构建一次，注入到所有组件；
    组件之间不共享模块级可变状态。
    """

    config: AppConfig

    # === 注入的服务 ===
    store: IKeyValueStore
    sink: IDownloadSink

    # === 组件 ===
    cache: CacheStore
    settings: SettingsStore
    resolver: MetadataResolver
    orchestrator: DownloadOrchestrator
