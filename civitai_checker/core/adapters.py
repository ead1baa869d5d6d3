"""
适配器 - 生产环境的接口实现
"""
import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from civitai_checker.core.ports import IKeyValueStore
from civitai_checker.core.utils import logger


def _key_str(key: Any) -> str:
    # StorageKey 继承自 str，这里统一取其取值
    return key.value if hasattr(key, "value") else str(key)


class JsonFileStore(IKeyValueStore):
    """基于单个 JSON 文件的键值存储

    文件内容为一个顶层对象，每次读写都完整加载整个文件；
    写入先落到临时文件再原子替换，保证文件始终是合法 JSON。
    """

    def __init__(self, path: Path):
        self.path = path

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"  -> [Store] 存储文件无法解析，按空处理: {self.path} ({e})")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"  -> [Store] 存储文件顶层不是对象，按空处理: {self.path}")
            return {}
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # 每次写入使用独立的临时文件，并发写入互不覆盖
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name + ".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    async def get(self, key: str) -> Optional[Any]:
        data = await asyncio.to_thread(self._read_all)
        return data.get(_key_str(key))

    async def set(self, key: str, value: Any) -> None:
        logger.debug(f"[STORE] set {_key_str(key)}")
        await asyncio.to_thread(self._set, _key_str(key), value)

    async def remove(self, key: str) -> None:
        logger.debug(f"[STORE] remove {_key_str(key)}")
        await asyncio.to_thread(self._remove, _key_str(key))
