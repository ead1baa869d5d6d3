"""
CivitAI API 工具

元数据通过两次链式 tRPC 请求获取:
  1. modelVersion.getById -> 所属模型 ID
  2. model.getById        -> 完整模型信息，从 modelVersions 中按 ID 精确匹配版本
任何网络或解析失败都按"未找到"处理（返回 None），调用方无需处理异常。
"""
import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional, TypedDict
from urllib.parse import parse_qs, quote, urlparse

import requests

from civitai_checker.core.schema import EnvKey
from civitai_checker.lib.cache.schema import ModelRecord

ENV_CIVITAI_TOKEN = EnvKey.CIVITAI_API_TOKEN.value

logger = logging.getLogger("civitai_checker")

DEFAULT_API_BASE = "https://civitai.com"
TRPC_VERSION_PROCEDURE = "modelVersion.getById"
TRPC_MODEL_PROCEDURE = "model.getById"


def get_api_token() -> Optional[str]:
    """获取 CivitAI API Token"""
    return os.environ.get(ENV_CIVITAI_TOKEN)


def get_proxy() -> Optional[str]:
    """当前生效的代理（https 优先，兼容大写变量名）"""
    for key in (EnvKey.HTTPS_PROXY, EnvKey.HTTP_PROXY):
        proxy = os.environ.get(key.value) or os.environ.get(key.value.upper())
        if proxy:
            return proxy
    return None


def _log_request_context() -> None:
    """记录 API 请求上下文（代理状态等）"""
    proxy = get_proxy()
    if proxy:
        logger.debug(f"  -> [CivitAI API] 使用代理: {proxy}")
    else:
        logger.debug("  -> [CivitAI API] 未配置代理")


class CivitaiUrlInfo(TypedDict):
    """CivitAI URL 解析结果类型"""

    is_civitai: bool
    is_model_page: bool
    is_api_url: bool
    model_id: Optional[int]
    version_id: Optional[int]


def parse_civitai_url(url: str) -> CivitaiUrlInfo:
    """解析 CivitAI URL

    支持格式:
      - https://civitai.com/models/12345
      - https://civitai.com/models/12345/model-name
      - https://civitai.com/models/12345?modelVersionId=67890
      - https://civitai.com/api/download/models/67890

    Returns:
        CivitaiUrlInfo 类型字典
    """
    result: CivitaiUrlInfo = {
        "is_civitai": False,
        "is_model_page": False,
        "is_api_url": False,
        "model_id": None,
        "version_id": None,
    }

    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()

    if host != "civitai.com" and not host.endswith(".civitai.com"):
        return result

    result["is_civitai"] = True
    path_parts = [p for p in parsed.path.split("/") if p]
    query = parse_qs(parsed.query)

    # /api/download/models/<version_id>
    if len(path_parts) >= 4 and path_parts[:3] == ["api", "download", "models"]:
        result["is_api_url"] = True
        if path_parts[3].isdigit():
            result["version_id"] = int(path_parts[3])
        return result

    # /models/<model_id>
    if len(path_parts) >= 2 and path_parts[0] == "models":
        result["is_model_page"] = True
        if path_parts[1].isdigit():
            result["model_id"] = int(path_parts[1])

        values = query.get("modelVersionId")
        if values and values[0].isdigit():
            result["version_id"] = int(values[0])

    return result


def build_trpc_url(api_base: str, procedure: str, entity_id: int) -> str:
    """构建 tRPC 查询 URL: /api/trpc/<procedure>?input={"json":{"id":..,"authed":true}}"""
    payload = json.dumps({"json": {"id": entity_id, "authed": True}}, separators=(",", ":"))
    return f"{api_base.rstrip('/')}/api/trpc/{procedure}?input={quote(payload, safe='')}"


def download_url(api_base: str, version_id: int, prefer_safetensor: bool = False) -> str:
    """构建模型下载地址

    默认由服务端返回该版本的主文件；prefer_safetensor 时显式请求 SafeTensor 格式的模型文件。
    """
    url = f"{api_base.rstrip('/')}/api/download/models/{version_id}"
    if prefer_safetensor:
        url += "?type=Model&format=SafeTensor"
    return url


def _dig(data: Any, *keys: str) -> Any:
    """安全地逐层取嵌套字段，任一层缺失返回 None"""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class MetadataResolver:
    """模型元数据解析器"""

    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
    ) -> None:
        self.api_base = api_base
        self._session = session or requests.Session()
        self._timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = get_api_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _get_trpc(self, procedure: str, entity_id: int) -> Any:
        """执行一次 tRPC 查询，返回 result.data.json"""
        response = self._session.get(
            build_trpc_url(self.api_base, procedure, entity_id),
            headers=self._headers(),
            timeout=self._timeout,
        )
        response.raise_for_status()
        return _dig(response.json(), "result", "data", "json")

    def fetch_model_info(self, version_id: int) -> Optional[ModelRecord]:
        """同步获取并规范化模型版本元数据

        Returns:
            ModelRecord，未找到或请求失败返回 None
        """
        _log_request_context()

        try:
            version_data = self._get_trpc(TRPC_VERSION_PROCEDURE, version_id)
            model_id = _dig(version_data, "model", "id")
            if not model_id:
                logger.debug(f"  -> [CivitAI API] 版本 {version_id} 未返回所属模型 ID")
                return None

            model_data = self._get_trpc(TRPC_MODEL_PROCEDURE, model_id)
            if not isinstance(model_data, dict):
                logger.debug(f"  -> [CivitAI API] 模型 {model_id} 无数据")
                return None

            # 在 modelVersions 中按 ID 精确匹配
            version_info = next(
                (v for v in model_data.get("modelVersions") or []
                 if isinstance(v, dict) and v.get("id") == version_id),
                None,
            )
            if not version_info:
                logger.debug(f"  -> [CivitAI API] 模型 {model_id} 中未找到版本 {version_id}")
                return None

            # 主文件 = 文件列表第一项
            files = version_info.get("files") or []
            if not isinstance(files, list):
                logger.warning(f"  -> [CivitAI API] 版本 {version_id} 的文件列表格式异常")
                return None
            primary_file = files[0] if files and isinstance(files[0], dict) else None

            return ModelRecord(
                model_id=model_data.get("id"),
                version_id=version_info.get("id"),
                model_name=model_data.get("name"),
                version_name=version_info.get("name"),
                base_model=version_info.get("baseModel"),
                model_type=model_data.get("type"),
                file_name=(primary_file or {}).get("name") or "",
                file_id=(primary_file or {}).get("id"),
                primary_file=primary_file,
                username=_dig(model_data, "user", "username"),
                created_at=version_info.get("createdAt"),
                updated_at=version_info.get("updatedAt"),
            )

        except requests.RequestException as e:
            logger.warning(f"  -> [CivitAI API] 请求失败: {e}")
            return None
        except (ValueError, TypeError, LookupError) as e:
            logger.warning(f"  -> [CivitAI API] 响应解析失败: {e}")
            return None

    async def get_model_info(self, version_id: int) -> Optional[ModelRecord]:
        """异步获取模型元数据（阻塞请求放到线程中执行）"""
        return await asyncio.to_thread(self.fetch_model_info, version_id)
