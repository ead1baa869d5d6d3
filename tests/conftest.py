"""
Pytest 共享 Fixtures

提供可复用的存储、缓存、设置和 mock 服务。
"""
import asyncio
from pathlib import Path

import pytest

from civitai_checker.lib.cache.store import CacheStore
from civitai_checker.lib.download.settings import SettingsStore
from tests.mocks import FakeSink, MemoryStore


@pytest.fixture
def memory_store() -> MemoryStore:
    """新建一个干净的 MemoryStore"""
    return MemoryStore()


@pytest.fixture
def cache(memory_store: MemoryStore) -> CacheStore:
    return CacheStore(memory_store)


@pytest.fixture
def settings(memory_store: MemoryStore) -> SettingsStore:
    """已初始化（默认设置）的 SettingsStore"""
    store = SettingsStore(memory_store)
    asyncio.run(store.init())
    return store


@pytest.fixture
def fake_sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def models_dir(tmp_path: Path) -> Path:
    """使用 pytest tmp_path 作为模型目录"""
    path = tmp_path / "models"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture(autouse=True)
def no_api_token(monkeypatch: pytest.MonkeyPatch) -> None:
    """避免本机环境变量中的 Token 影响请求头断言"""
    monkeypatch.delenv("CIVITAI_API_TOKEN", raising=False)
