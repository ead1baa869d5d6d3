"""
模型下载模块

  - MetadataResolver:     通过 CivitAI tRPC 接口获取模型元数据
  - generate_file_name(): 按模板生成文件名（纯函数）
  - SettingsStore:        下载设置（合并到默认值之上）
  - DownloadOrchestrator: 元数据 -> 文件名 -> 交给 Download Sink -> 写入缓存
  - Aria2DownloadSink:    基于 aria2c 的下载执行
"""
from civitai_checker.lib.download.aria2 import Aria2DownloadSink
from civitai_checker.lib.download.civitai import (
    MetadataResolver,
    build_trpc_url,
    download_url,
    parse_civitai_url,
)
from civitai_checker.lib.download.orchestrator import (
    DownloadOrchestrator,
    DownloadOutcome,
    HandoffResult,
    HandoffStatus,
)
from civitai_checker.lib.download.settings import (
    DEFAULT_TEMPLATE,
    DownloadSettings,
    ExtensionMode,
    SettingsStore,
)
from civitai_checker.lib.download.template import generate_file_name, sanitize_file_name

__all__ = [
    # 元数据
    "MetadataResolver",
    "parse_civitai_url",
    "build_trpc_url",
    "download_url",
    # 文件名
    "generate_file_name",
    "sanitize_file_name",
    # 设置
    "DownloadSettings",
    "ExtensionMode",
    "SettingsStore",
    "DEFAULT_TEMPLATE",
    # 编排
    "DownloadOrchestrator",
    "DownloadOutcome",
    "HandoffResult",
    "HandoffStatus",
    "Aria2DownloadSink",
]
