"""
已下载模型缓存

  - CacheStore:   load / save / add / remove / clear / has / get / get_stats
  - ModelRecord:  规范化的模型版本记录
  - import_cm_info(): 从 .cm-info.json 重建缓存
"""
from civitai_checker.lib.cache.schema import ModelRecord, cache_key
from civitai_checker.lib.cache.store import CacheStats, CacheStore, decode_cache
from civitai_checker.lib.cache.importer import ImportFailure, ImportResult, import_cm_info

__all__ = [
    "CacheStore",
    "CacheStats",
    "ModelRecord",
    "cache_key",
    "decode_cache",
    "import_cm_info",
    "ImportResult",
    "ImportFailure",
]
