"""
测试用 Mock 实现

提供 IKeyValueStore、IDownloadSink 的测试替身和 requests.Session 的假实现，
用于单元测试中隔离外部依赖（文件系统、子进程、网络）。
"""
import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from civitai_checker.core.ports import IDownloadSink, IKeyValueStore
from civitai_checker.lib.cache.schema import ModelRecord


def _key_str(key: Any) -> str:
    return key.value if hasattr(key, "value") else str(key)


class MemoryStore(IKeyValueStore):
    """
    内存键值存储

    - data 可直接预置原始值（包括损坏的数据）
    - 记录所有写入，可在测试中断言
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = dict(data or {})
        self.set_calls: List[str] = []
        self.remove_calls: List[str] = []

    async def get(self, key: str) -> Optional[Any]:
        return self.data.get(_key_str(key))

    async def set(self, key: str, value: Any) -> None:
        self.set_calls.append(_key_str(key))
        self.data[_key_str(key)] = value

    async def remove(self, key: str) -> None:
        self.remove_calls.append(_key_str(key))
        self.data.pop(_key_str(key), None)

    def decoded(self, key: str) -> Any:
        """读取并 JSON 解码某个 Key 的原始值"""
        raw = self.data.get(_key_str(key))
        return json.loads(raw) if isinstance(raw, str) else raw


class FakeSink(IDownloadSink):
    """
    模拟 Download Sink

    - 记录收到的所有消息
    - response 为预设响应；delay 秒后才响应，用于模拟等待确认超时
    """

    def __init__(self, response: Optional[Dict[str, Any]] = None, delay: float = 0.0):
        self.response = response if response is not None else {"success": True, "downloadId": "1"}
        self.delay = delay
        self.messages: List[Dict[str, Any]] = []
        self.completed = 0

    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        self.messages.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.completed += 1
        return self.response


class FakeResponse:
    """requests.Response 的最小替身"""

    def __init__(self, payload: Any = None, status_code: int = 200, invalid_json: bool = False):
        self._payload = payload
        self.status_code = status_code
        self._invalid_json = invalid_json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value")
        return self._payload


@dataclass
class FakeSession:
    """
    模拟 requests.Session

    routes: URL 中包含的片段 -> 响应（或返回响应的函数）；按插入顺序匹配
    """
    routes: Dict[str, Any] = field(default_factory=dict)
    calls: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[Exception] = None

    def get(self, url: str, headers: Optional[Dict[str, str]] = None, timeout: Any = None) -> FakeResponse:
        self.calls.append({"url": url, "headers": headers or {}, "timeout": timeout})
        if self.error is not None:
            raise self.error
        for fragment, response in self.routes.items():
            if fragment in url:
                return response(url) if callable(response) else response
        return FakeResponse(status_code=404)


def trpc_payload(data: Any) -> Dict[str, Any]:
    """包装为 tRPC 响应结构 result.data.json"""
    return {"result": {"data": {"json": data}}}


def make_record(**overrides: Any) -> ModelRecord:
    """构建一条测试用 ModelRecord"""
    data: Dict[str, Any] = {
        "modelId": 100,
        "versionId": 200,
        "modelName": "Foo",
        "versionName": "v1",
        "baseModel": "SD1.5",
        "type": "Checkpoint",
        "fileName": "foo_v1.safetensors",
        "fileId": 300,
        "username": "alice",
        "createdAt": "2024-03-05T10:20:30.000Z",
        "updatedAt": "2024-04-01T08:00:00.000Z",
    }
    data.update(overrides)
    return ModelRecord.model_validate(data)
