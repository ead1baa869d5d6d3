"""
应用配置

从 config.yaml 读取并通过 Pydantic 校验，在命令执行前即可发现配置错误。
路径优先读取环境变量 CIVITAI_CHECKER_CONFIG，否则使用 ~/.config/civitai-checker/config.yaml；
文件不存在时全部使用默认值。
"""
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from civitai_checker.core.errors import ConfigError
from civitai_checker.core.schema import EnvKey
from civitai_checker.lib.utils import load_yaml

# ============================================================
# 路径常量
# ============================================================
CONFIG_DIR = Path.home() / ".config" / "civitai-checker"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "config.yaml"
DEFAULT_STORE_FILE = CONFIG_DIR / "storage.json"


class Aria2Config(BaseModel):
    """aria2c 下载参数"""
    connections: int = Field(16, ge=1, le=16)  # aria2 上限 16
    split_size: int = 5            # 最小分片大小 MB
    max_retries: int = 5
    timeout: int = 30              # 传输超时秒数
    connect_timeout: int = 10
    retry_wait: int = 3


class AppConfig(BaseModel):
    """config.yaml 的顶层结构"""
    api_base: str = "https://civitai.com"
    store_path: Path = DEFAULT_STORE_FILE
    log_file: Optional[Path] = None
    request_timeout: float = Field(15, gt=0)
    # 等待 Download Sink 确认的时长，超时按"已开始下载"处理
    handoff_timeout: float = Field(30, gt=0)
    # 被动扫描前等待页面自身请求发生的时长
    scan_delay: float = Field(1.0, ge=0)
    settle_delay: float = Field(0.3, ge=0)
    poll_interval: float = Field(0.5, gt=0)
    aria2: Aria2Config = Field(default_factory=Aria2Config)


def get_config_path() -> Path:
    env_path = os.environ.get(EnvKey.CONFIG_PATH.value)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_FILE


def load_config(path: Optional[Path] = None) -> AppConfig:
    """加载并验证配置文件

    Raises:
        ConfigError: YAML 语法错误或字段校验失败
    """
    config_path = path or get_config_path()
    try:
        raw = load_yaml(config_path)
    except yaml.YAMLError as e:
        raise ConfigError(f"{config_path} 不是合法的 YAML:\n{e}") from e

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"{config_path} 配置有误:\n{e}") from e
