"""
从 .cm-info.json 文件重建缓存

Civitai 管理类工具会在每个模型文件旁写入 <name>.cm-info.json，
记录 ModelId / VersionId / ModelName 等信息。扫描目录即可得到已下载模型列表。
"""
import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from civitai_checker.core.utils import logger
from civitai_checker.lib.cache.schema import ModelRecord
from civitai_checker.lib.cache.store import CacheStore

CM_INFO_SUFFIX = ".cm-info.json"


@dataclass
class ImportFailure:
    """单个文件的导入失败信息"""
    file: str
    error: str


@dataclass
class ImportResult:
    """一次导入的结果"""
    success: bool
    count: int
    models: Dict[str, ModelRecord] = field(default_factory=dict)
    errors: List[ImportFailure] = field(default_factory=list)


def is_valid_cm_info(data: Any) -> bool:
    """必须同时包含非空的 ModelId 和 VersionId"""
    return isinstance(data, dict) and bool(data.get("ModelId")) and bool(data.get("VersionId"))


def parse_cm_info(path: Path) -> Optional[ModelRecord]:
    """解析单个 .cm-info.json

    Returns:
        ModelRecord，缺少必需字段时返回 None

    Raises:
        OSError / ValueError: 文件无法读取或内容无效
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if not is_valid_cm_info(data):
        return None
    return ModelRecord.model_validate(data)


def scan_cm_info_files(directory: Path) -> Tuple[Dict[str, ModelRecord], List[ImportFailure]]:
    """递归扫描目录下所有 .cm-info.json"""
    models: Dict[str, ModelRecord] = {}
    errors: List[ImportFailure] = []

    if not directory.exists():
        return models, errors

    for info_file in sorted(directory.rglob(f"*{CM_INFO_SUFFIX}")):
        if not info_file.is_file():
            continue
        try:
            record = parse_cm_info(info_file)
        except (OSError, ValueError, ValidationError) as e:
            errors.append(ImportFailure(file=info_file.name, error=str(e)))
            continue
        if record is None:
            logger.debug(f"  -> [Import] 缺少 ModelId/VersionId，跳过: {info_file.name}")
            continue
        models[record.key] = record

    return models, errors


async def import_cm_info(directory: Path, cache: CacheStore) -> ImportResult:
    """扫描目录并用结果整体替换缓存

    至少解析出一条记录时才写入，避免用空结果覆盖已有缓存。
    """
    logger.info(f"  -> [Import] 扫描目录: {directory}")
    models, errors = await asyncio.to_thread(scan_cm_info_files, directory)

    if models:
        await cache.save(models)
        logger.info(f"  -> [Import] 已导入 {len(models)} 个模型")
    for failure in errors:
        logger.warning(f"  -> [Import] 解析失败 {failure.file}: {failure.error}")

    return ImportResult(
        success=bool(models),
        count=len(models),
        models=models,
        errors=errors,
    )
