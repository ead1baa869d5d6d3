"""
已下载模型缓存

持久化在键值存储的 modelsCache 下，内容为 JSON 编码的 key -> ModelRecord 映射。
没有进程内的权威副本：每次读取都完整加载，每次修改都是一次 load-modify-save。
并发写入不做合并，后保存者覆盖先保存者。
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from civitai_checker.core.ports import IKeyValueStore
from civitai_checker.core.schema import StorageKey
from civitai_checker.core.utils import logger, utc_now_iso
from civitai_checker.lib.cache.schema import ModelRecord, cache_key

# 历史版本中出现过多层 JSON 编码，解码时最多剥离的层数
_MAX_DECODE_DEPTH = 3


@dataclass
class CacheStats:
    """缓存统计"""
    count: int
    models: Dict[str, ModelRecord] = field(default_factory=dict)


def _unwrap_json(value: Any) -> Any:
    """剥离字符串形式的 JSON 编码层"""
    for _ in range(_MAX_DECODE_DEPTH):
        if not isinstance(value, str):
            break
        value = json.loads(value)
    return value


def decode_cache(raw: Any) -> Dict[str, ModelRecord]:
    """将持久化的原始值解码为缓存映射

    兼容:
      - 原始 dict
      - JSON 字符串编码的 dict（以及双重编码）
      - 值本身也被 JSON 字符串化的条目
    数组等非映射结构视为损坏，返回空映射；单条无效记录跳过。
    """
    if raw is None or raw == "":
        return {}

    try:
        data = _unwrap_json(raw)
    except ValueError as e:
        logger.warning(f"  -> [Cache] 缓存数据不是合法 JSON，按空缓存处理 ({e})")
        return {}

    if isinstance(data, list):
        logger.warning("  -> [Cache] 缓存数据是数组（旧格式），按空缓存处理")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"  -> [Cache] 缓存数据类型异常: {type(data).__name__}，按空缓存处理")
        return {}

    cache: Dict[str, ModelRecord] = {}
    for key, value in data.items():
        try:
            cache[str(key)] = ModelRecord.model_validate(_unwrap_json(value))
        except (ValueError, ValidationError) as e:
            logger.warning(f"  -> [Cache] 跳过无效缓存条目 {key}: {e}")
    return cache


class CacheStore:
    """已下载模型缓存"""

    def __init__(self, store: IKeyValueStore):
        self._store = store

    async def load(self) -> Dict[str, ModelRecord]:
        """完整加载缓存；缺失或损坏时返回空映射，不抛异常"""
        try:
            raw = await self._store.get(StorageKey.MODELS_CACHE)
        except OSError as e:
            logger.warning(f"  -> [Cache] 读取缓存失败，按空缓存处理: {e}")
            return {}
        return decode_cache(raw)

    async def save(self, cache: Mapping[str, ModelRecord]) -> None:
        """整体覆盖保存（存储层不做合并）"""
        payload = {key: record.to_storage() for key, record in cache.items()}
        await self._store.set(StorageKey.MODELS_CACHE, json.dumps(payload, ensure_ascii=False))

    async def add(self, record: ModelRecord) -> str:
        """写入一条记录并打上 importedAt，返回缓存 Key"""
        cache = await self.load()
        key = record.key
        cache[key] = record.model_copy(update={"imported_at": utc_now_iso()})
        await self.save(cache)
        logger.info(f"  -> [Cache] 已加入缓存: {key} ({record.model_name} / {record.version_name})")
        return key

    async def remove(self, key: str) -> None:
        """删除指定 Key，不存在时无操作"""
        cache = await self.load()
        if key not in cache:
            logger.debug(f"  -> [Cache] 缓存中不存在 {key}，无需删除")
            return
        del cache[key]
        await self.save(cache)
        logger.info(f"  -> [Cache] 已从缓存移除: {key}")

    async def clear(self) -> None:
        """删除全部缓存数据"""
        await self._store.remove(StorageKey.MODELS_CACHE)
        logger.info("  -> [Cache] 缓存已清空")

    async def has(self, model_id: int, version_id: int) -> bool:
        cache = await self.load()
        return cache_key(model_id, version_id) in cache

    async def get(self, model_id: int, version_id: int) -> Optional[ModelRecord]:
        cache = await self.load()
        return cache.get(cache_key(model_id, version_id))

    async def get_stats(self) -> CacheStats:
        cache = await self.load()
        return CacheStats(count=len(cache), models=cache)
