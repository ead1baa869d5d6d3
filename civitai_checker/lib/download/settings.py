"""
下载设置

持久化在键值存储的 downloadSettings 下（JSON 编码）。
读取时始终合并到默认值之上：缺失或无效的字段使用默认值，不会出现部分未定义。
"""
import json
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from civitai_checker.core.errors import ConfigError
from civitai_checker.core.ports import IKeyValueStore
from civitai_checker.core.schema import StorageKey
from civitai_checker.core.utils import logger

DEFAULT_TEMPLATE = "[{author}] {base_model} - {file_name} ({created_at}_{created_time})"


class ExtensionMode(str, Enum):
    """文件扩展名策略"""
    # 模板未产生扩展名时，追加主文件的扩展名
    PRIMARY_FILE = "primary_file"
    # 不以已知权重扩展名结尾时，追加默认扩展名
    KNOWN_WEIGHTS = "known_weights"


class DownloadSettings(BaseModel):
    """下载设置"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    file_name_template: str = Field(DEFAULT_TEMPLATE, alias="fileNameTemplate")
    auto_add_to_cache: bool = Field(True, alias="autoAddToCache")
    always_ask_save_location: bool = Field(True, alias="alwaysAskSaveLocation")
    download_primary_file: bool = Field(True, alias="downloadPrimaryFile")
    extension_mode: ExtensionMode = Field(ExtensionMode.KNOWN_WEIGHTS, alias="extensionMode")
    replace_spaces: bool = Field(False, alias="replaceSpaces")
    download_dir: str = Field(".", alias="downloadDir")

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def merge_over_defaults(raw: Dict[str, Any]) -> DownloadSettings:
    """将持久化的设置合并到默认值之上，无效字段回退为默认值"""
    try:
        return DownloadSettings.model_validate(raw)
    except ValidationError as e:
        invalid = {err["loc"][0] for err in e.errors() if err["loc"]}
        logger.warning(f"  -> [Settings] 以下设置项无效，使用默认值: {', '.join(map(str, sorted(invalid, key=str)))}")
        return DownloadSettings.model_validate({k: v for k, v in raw.items() if k not in invalid})


def decode_settings(raw: Any) -> DownloadSettings:
    """解码持久化的原始值；缺失或损坏时返回默认设置"""
    if raw is None or raw == "":
        return DownloadSettings()

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.warning(f"  -> [Settings] 设置不是合法 JSON，使用默认设置 ({e})")
            return DownloadSettings()

    if not isinstance(raw, dict):
        logger.warning(f"  -> [Settings] 设置类型异常: {type(raw).__name__}，使用默认设置")
        return DownloadSettings()

    return merge_over_defaults(raw)


class SettingsStore:
    """下载设置存储

    显式生命周期：构造后调用 init() 加载，reload() 重新读取。
    """

    def __init__(self, store: IKeyValueStore):
        self._store = store
        self._settings: Optional[DownloadSettings] = None

    async def init(self) -> DownloadSettings:
        return await self.reload()

    async def reload(self) -> DownloadSettings:
        raw = await self._store.get(StorageKey.DOWNLOAD_SETTINGS)
        self._settings = decode_settings(raw)
        return self._settings

    @property
    def current(self) -> DownloadSettings:
        if self._settings is None:
            raise RuntimeError("SettingsStore 尚未初始化，请先调用 init()")
        return self._settings

    async def save(self, updates: Dict[str, Any]) -> DownloadSettings:
        """合并更新并持久化

        Args:
            updates: 以持久化字段名（camelCase）为 Key 的部分设置

        Raises:
            ConfigError: 更新后的设置无效
        """
        merged = {**self.current.to_storage(), **updates}
        try:
            settings = DownloadSettings.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"设置无效:\n{e}") from e

        await self._store.set(StorageKey.DOWNLOAD_SETTINGS, json.dumps(settings.to_storage(), ensure_ascii=False))
        self._settings = settings
        logger.info("  -> [Settings] 设置已保存")
        return settings

    async def reset(self) -> DownloadSettings:
        """删除持久化设置，恢复默认值"""
        await self._store.remove(StorageKey.DOWNLOAD_SETTINGS)
        self._settings = DownloadSettings()
        logger.info("  -> [Settings] 已恢复默认设置")
        return self._settings
