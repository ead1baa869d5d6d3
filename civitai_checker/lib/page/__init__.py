"""
页面状态与版本识别

  - VersionIdentifier:  URL 优先、被动扫描兜底的版本 ID 识别
  - NavigationWatcher:  导航变化订阅（推送 + 轮询，统一防抖）
  - StaticPageState / HarPageState: 页面状态实现
"""
from civitai_checker.lib.page.navigation import NavigationWatcher, is_model_page
from civitai_checker.lib.page.state import HarPageState, StaticPageState, read_har_urls
from civitai_checker.lib.page.version import (
    VersionIdentifier,
    version_id_from_entries,
    version_id_from_url,
)

__all__ = [
    "VersionIdentifier",
    "version_id_from_url",
    "version_id_from_entries",
    "NavigationWatcher",
    "is_model_page",
    "StaticPageState",
    "HarPageState",
    "read_har_urls",
]
