"""
端口（接口）定义
所有与外部世界交互的能力都在这里声明
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class IKeyValueStore(ABC):
    """键值持久化接口

    所有执行上下文共享同一个存储，读写均为异步且不具备事务性：
    load-modify-save 之间没有锁，并发写入时后保存者覆盖先保存者。
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """读取指定 Key，不存在返回 None"""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """整体覆盖写入指定 Key"""
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        """删除指定 Key，不存在时无操作"""
        ...


class IDownloadSink(ABC):
    """下载执行接口（特权上下文）

    通过一次请求/响应消息交互，消息体均为可 JSON 序列化的 dict:
      请求: {action, url, fileName, versionId, modelInfo, settings, saveAs}
      响应: {success: True, downloadId} 或 {success: False, error}
    """

    @abstractmethod
    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """处理一条下载请求消息"""
        ...


class IPageState(ABC):
    """页面状态接口

    提供当前地址以及页面已经发生过的网络请求记录（被动扫描用）。
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """当前页面完整 URL"""
        ...

    @abstractmethod
    def resource_entries(self) -> List[str]:
        """已发生的网络请求 URL 列表（按发生顺序）"""
        ...
