"""
导航变化订阅测试

覆盖: 只在模型页面触发、防抖合并连续事件、轮询检测查询串变化、推送与轮询不重复触发
"""
import asyncio
from typing import List

from civitai_checker.lib.page.navigation import NavigationWatcher, is_model_page

SETTLE = 0.05


def test_is_model_page():
    assert is_model_page("https://civitai.com/models/1?modelVersionId=2") is True
    assert is_model_page("https://civitai.com/images/1") is False


class TestNotify:

    def test_single_navigation(self):
        calls: List[str] = []

        async def on_change(url: str) -> None:
            calls.append(url)

        async def scenario():
            watcher = NavigationWatcher(on_change, settle_delay=SETTLE)
            watcher.notify("https://civitai.com/models/1")
            assert watcher.pending is True
            await asyncio.sleep(SETTLE * 3)
            await watcher.drain()

        asyncio.run(scenario())
        assert calls == ["https://civitai.com/models/1"]

    def test_debounce_keeps_last(self):
        """连续导航只触发最后一次"""
        calls: List[str] = []

        async def on_change(url: str) -> None:
            calls.append(url)

        async def scenario():
            watcher = NavigationWatcher(on_change, settle_delay=SETTLE)
            watcher.notify("https://civitai.com/models/1")
            watcher.notify("https://civitai.com/models/2")
            watcher.notify("https://civitai.com/models/3")
            await asyncio.sleep(SETTLE * 3)
            await watcher.drain()

        asyncio.run(scenario())
        assert calls == ["https://civitai.com/models/3"]

    def test_non_model_page_ignored(self):
        calls: List[str] = []

        async def on_change(url: str) -> None:
            calls.append(url)

        async def scenario():
            watcher = NavigationWatcher(on_change, settle_delay=SETTLE)
            watcher.notify("https://civitai.com/images/1")
            assert watcher.pending is False
            await asyncio.sleep(SETTLE * 2)

        asyncio.run(scenario())
        assert calls == []

    def test_in_flight_callback_not_cancelled(self):
        """已开始的回调不会被新事件取消"""
        finished: List[str] = []

        async def on_change(url: str) -> None:
            await asyncio.sleep(SETTLE * 2)
            finished.append(url)

        async def scenario():
            watcher = NavigationWatcher(on_change, settle_delay=SETTLE)
            watcher.notify("https://civitai.com/models/1")
            await asyncio.sleep(SETTLE * 1.5)  # 第一个回调已开始
            watcher.notify("https://civitai.com/models/2")
            await asyncio.sleep(SETTLE * 5)
            await watcher.drain()

        asyncio.run(scenario())
        assert finished == ["https://civitai.com/models/1", "https://civitai.com/models/2"]

    def test_callback_error_is_contained(self):
        calls: List[str] = []

        async def on_change(url: str) -> None:
            calls.append(url)
            raise RuntimeError("boom")

        async def scenario():
            watcher = NavigationWatcher(on_change, settle_delay=SETTLE)
            watcher.notify("https://civitai.com/models/1")
            await asyncio.sleep(SETTLE * 3)
            await watcher.drain()
            watcher.notify("https://civitai.com/models/2")
            await asyncio.sleep(SETTLE * 3)
            await watcher.drain()

        asyncio.run(scenario())
        assert len(calls) == 2

    def test_stop_cancels_pending(self):
        calls: List[str] = []

        async def on_change(url: str) -> None:
            calls.append(url)

        async def scenario():
            watcher = NavigationWatcher(on_change, settle_delay=SETTLE)
            watcher.notify("https://civitai.com/models/1")
            watcher.stop()
            watcher.notify("https://civitai.com/models/2")
            await asyncio.sleep(SETTLE * 3)

        asyncio.run(scenario())
        assert calls == []


class TestPolling:

    def test_poll_detects_query_change(self):
        """轮询发现 modelVersionId 变化后触发"""
        calls: List[str] = []
        location = {"url": "https://civitai.com/models/1?modelVersionId=10"}

        async def on_change(url: str) -> None:
            calls.append(url)

        async def scenario():
            watcher = NavigationWatcher(
                on_change,
                location_source=lambda: location["url"],
                settle_delay=SETTLE,
                poll_interval=0.02,
            )
            task = asyncio.create_task(watcher.run())
            await asyncio.sleep(0.05)
            location["url"] = "https://civitai.com/models/1?modelVersionId=11"
            await asyncio.sleep(0.05 + SETTLE * 3)
            watcher.stop()
            await task
            await watcher.drain()

        asyncio.run(scenario())
        assert calls == ["https://civitai.com/models/1?modelVersionId=11"]

    def test_initial_location_not_reported(self):
        """启动时的地址作为基准，不触发"""
        calls: List[str] = []

        async def on_change(url: str) -> None:
            calls.append(url)

        async def scenario():
            watcher = NavigationWatcher(
                on_change,
                location_source=lambda: "https://civitai.com/models/1?modelVersionId=10",
                settle_delay=SETTLE,
                poll_interval=0.02,
            )
            task = asyncio.create_task(watcher.run())
            await asyncio.sleep(0.1)
            watcher.stop()
            await task

        asyncio.run(scenario())
        assert calls == []

    def test_notify_and_poll_trigger_once(self):
        """推送过的地址，轮询不再重复触发"""
        calls: List[str] = []
        location = {"url": "https://civitai.com/models/1?modelVersionId=10"}

        async def on_change(url: str) -> None:
            calls.append(url)

        async def scenario():
            watcher = NavigationWatcher(
                on_change,
                location_source=lambda: location["url"],
                settle_delay=SETTLE,
                poll_interval=0.02,
            )
            task = asyncio.create_task(watcher.run())
            await asyncio.sleep(0.03)
            location["url"] = "https://civitai.com/models/1?modelVersionId=12"
            watcher.notify(location["url"])
            await asyncio.sleep(SETTLE * 4)
            watcher.stop()
            await task
            await watcher.drain()

        asyncio.run(scenario())
        assert calls == ["https://civitai.com/models/1?modelVersionId=12"]
