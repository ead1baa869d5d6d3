"""
模型记录 Schema

ModelRecord 是缓存、文件名模板和下载请求共用的规范化结构。
写入始终使用 camelCase 字段名；历史上出现过的字段名
（modelVersionId / modelVersionName、.cm-info.json 的 PascalCase）只在读取时兼容。
"""
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def cache_key(model_id: int, version_id: int) -> str:
    """缓存复合 Key: "{modelId}-{versionId}" """
    return f"{model_id}-{version_id}"


def _field(alias: str, *legacy: str, default: Any = ...) -> Any:
    return Field(default, alias=alias, validation_alias=AliasChoices(alias, *legacy))


class ModelRecord(BaseModel):
    """单个模型版本的规范化描述"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", protected_namespaces=())

    model_id: int = _field("modelId", "ModelId")
    version_id: int = _field("versionId", "modelVersionId", "VersionId")
    model_name: str = _field("modelName", "ModelName", default="")
    version_name: str = _field("versionName", "modelVersionName", "VersionName", default="")
    base_model: str = _field("baseModel", "BaseModel", default="")
    model_type: str = _field("type", "ModelType", default="")
    file_name: Optional[str] = _field("fileName", default=None)
    file_id: Optional[int] = _field("fileId", default=None)
    primary_file: Optional[Dict[str, Any]] = _field("primaryFile", default=None)
    username: Optional[str] = _field("username", "author", default=None)
    created_at: Optional[str] = _field("createdAt", default=None)
    updated_at: Optional[str] = _field("updatedAt", default=None)
    imported_at: Optional[str] = _field("importedAt", "ImportedAt", default=None)

    @field_validator("model_name", "version_name", "base_model", "model_type", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def key(self) -> str:
        """缓存复合 Key"""
        return cache_key(self.model_id, self.version_id)

    @property
    def primary_file_name(self) -> str:
        """主文件的原始文件名，优先取 primaryFile.name"""
        if self.primary_file and isinstance(self.primary_file.get("name"), str):
            return self.primary_file["name"]
        return self.file_name or ""

    def to_storage(self) -> Dict[str, Any]:
        """序列化为持久化 / 消息传递使用的 camelCase 字典"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
