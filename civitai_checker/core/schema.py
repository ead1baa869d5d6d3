"""
Schema & 类型定义

集中管理:
- StorageKey: 持久化存储 Key 枚举（避免魔法字符串）
- EnvKey: 环境变量名枚举（避免魔法字符串）
"""
from enum import Enum


# ============================================================
# 持久化存储 Key（避免魔法字符串）
# ============================================================
class StorageKey(str, Enum):
    """
    键值存储中所有 Key 的枚举定义。

    取值与浏览器扩展时代保持一致，旧数据可直接读取。
    """
    # 已下载模型缓存（JSON 编码的 key -> ModelRecord 映射）
    MODELS_CACHE = "modelsCache"

    # 下载设置（JSON 编码的 DownloadSettings）
    DOWNLOAD_SETTINGS = "downloadSettings"


# ============================================================
# 环境变量名枚举
# ============================================================
class EnvKey(str, Enum):
    """
    程序读取的环境变量名。
    """
    # CivitAI
    CIVITAI_API_TOKEN = "CIVITAI_API_TOKEN"

    # 配置文件路径覆盖
    CONFIG_PATH = "CIVITAI_CHECKER_CONFIG"

    # Proxy
    HTTP_PROXY = "http_proxy"
    HTTPS_PROXY = "https_proxy"
