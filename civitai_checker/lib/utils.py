"""
通用工具函数
"""
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from civitai_checker.core.utils import parse_iso


def load_yaml(path: Path) -> Dict[str, Any]:
    """加载 YAML 文件"""
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def format_timestamp(iso_string: Optional[str]) -> str:
    """ISO 时间 -> "YYYY-MM-DD HH:MM:SS" (UTC)，无效返回空字符串"""
    parsed = parse_iso(iso_string)
    if parsed is None:
        return ""
    return parsed.strftime("%Y-%m-%d %H:%M:%S")
