"""
文件名模板引擎

纯函数：相同输入始终得到相同输出，不做任何 I/O。

支持两套占位符:
  - snake_case: {model_name} {created_at} {updated_at} {created_time} {updated_time}
                {author} {base_model} {file_name} {file_id} {model_id}
                {model_version_id} {model_version_name} {model_type}
  - 记录字段名: {modelId} {versionId} {modelName} {versionName} {baseModel}
                {type} {fileName} {username}
未知或缺失的字段替换为 "_"，连续下划线最终合并为一个。
"""
import re
from typing import Dict, Optional

from civitai_checker.core.utils import parse_iso
from civitai_checker.lib.cache.schema import ModelRecord
from civitai_checker.lib.download.settings import DEFAULT_TEMPLATE, ExtensionMode

# 文件系统保留字符
RESERVED_CHARS = re.compile(r'[<>:"/\\|?*]')
MULTI_UNDERSCORE = re.compile(r"_{2,}")
WHITESPACE = re.compile(r"\s+")
PLACEHOLDER = re.compile(r"\{([A-Za-z_]+)\}")
EXTENSION = re.compile(r"(\.[^./\\]+)$")

MISSING = "_"
VERSION_NAME_TOKENS = ("versionName", "model_version_name")

KNOWN_EXTENSIONS = (
    ".safetensors", ".ckpt", ".pt", ".pth", ".bin", ".gguf", ".onnx", ".sft",
)
DEFAULT_EXTENSION = ".safetensors"


def sanitize_file_name(value: Optional[object], replace_spaces: bool = False) -> str:
    """清理单个替换值：去除保留字符、首尾空白，可选将空白替换为下划线

    空值返回 "_"。对已清理的值再次调用结果不变。
    """
    if value is None:
        return MISSING
    text = RESERVED_CHARS.sub("", str(value)).strip()
    if replace_spaces:
        text = WHITESPACE.sub("_", text)
    return text or MISSING


def finalize_file_name(name: str) -> str:
    """清理完整文件名：去除保留字符、合并连续下划线、去除首尾空白"""
    text = RESERVED_CHARS.sub("", name)
    text = MULTI_UNDERSCORE.sub("_", text)
    return text.strip() or MISSING


def get_file_extension(file_name: Optional[str]) -> str:
    """提取小写扩展名（含点），无扩展名返回空字符串"""
    if not file_name:
        return ""
    match = EXTENSION.search(file_name)
    return match.group(1).lower() if match else ""


def strip_extension(file_name: Optional[str]) -> Optional[str]:
    if not file_name:
        return None
    return EXTENSION.sub("", file_name)


def _format_date(iso_string: Optional[str]) -> str:
    parsed = parse_iso(iso_string)
    return parsed.strftime("%Y-%m-%d") if parsed else MISSING


def _format_time(iso_string: Optional[str]) -> str:
    parsed = parse_iso(iso_string)
    return parsed.strftime("%H-%M-%S") if parsed else MISSING


def _id_or_missing(value: Optional[int]) -> str:
    return str(value) if value else MISSING


def template_variables(record: ModelRecord, replace_spaces: bool = False) -> Dict[str, str]:
    """构建全部占位符的替换值"""
    def clean(value: Optional[object]) -> str:
        return sanitize_file_name(value, replace_spaces)

    model_name = clean(record.model_name)
    version_name = clean(record.version_name)
    base_model = clean(record.base_model)
    model_type = clean(record.model_type)
    author = clean(record.username)
    file_stem = clean(strip_extension(record.primary_file_name))

    return {
        # snake_case
        "model_name": model_name,
        "created_at": _format_date(record.created_at),
        "updated_at": _format_date(record.updated_at),
        "created_time": _format_time(record.created_at),
        "updated_time": _format_time(record.updated_at),
        "author": author,
        "base_model": base_model,
        "file_name": file_stem,
        "file_id": _id_or_missing(record.file_id),
        "model_id": _id_or_missing(record.model_id),
        "model_version_id": _id_or_missing(record.version_id),
        "model_version_name": version_name,
        "model_type": model_type,
        # 记录字段名
        "modelId": _id_or_missing(record.model_id),
        "versionId": _id_or_missing(record.version_id),
        "modelName": model_name,
        "versionName": version_name,
        "baseModel": base_model,
        "type": model_type,
        "fileName": file_stem,
        "username": author,
    }


def apply_extension(name: str, record: ModelRecord, mode: ExtensionMode) -> str:
    """按扩展名策略补全扩展名"""
    if mode == ExtensionMode.PRIMARY_FILE:
        extension = get_file_extension(record.primary_file_name)
        if extension and not name.lower().endswith(extension):
            return name + extension
        return name

    if not name.lower().endswith(KNOWN_EXTENSIONS):
        return name + DEFAULT_EXTENSION
    return name


def generate_file_name(
    record: ModelRecord,
    template: Optional[str] = None,
    extension_mode: ExtensionMode = ExtensionMode.KNOWN_WEIGHTS,
    replace_spaces: bool = False,
) -> str:
    """根据模板生成文件名

    Args:
        record:         模型记录
        template:       文件名模板，None 使用默认模板
        extension_mode: 扩展名策略
        replace_spaces: 是否将替换值中的空白替换为下划线

    Returns:
        清理后的文件名（含扩展名）
    """
    variables = template_variables(record, replace_spaces)
    source = template or DEFAULT_TEMPLATE

    def substitute(match: "re.Match[str]") -> str:
        token = match.group(1)
        value = variables.get(token, MISSING)
        # 模板写作 v{versionName} 而版本名本身以 v 开头时，不重复前缀
        if token in VERSION_NAME_TOKENS and value[:1] in "vV" and source[match.start() - 1:match.start()] in ("v", "V"):
            return value[1:] or value
        return value

    rendered = PLACEHOLDER.sub(substitute, source)
    # 扩展名来自远端文件名，追加后再清理一次
    return finalize_file_name(apply_extension(finalize_file_name(rendered), record, extension_mode))
