"""
页面导航变化订阅

两种触发来源汇入同一个订阅:
  - notify(url): 单页应用导航（history 变更）时主动推送
  - run():       按固定间隔轮询当前地址，查询串与上次不同即触发
两者都只在模型页面（路径含 /models/）上生效，并统一经过一次防抖:
新事件到来时取消尚未到期的等待，已开始的回调不会被取消。
"""
import asyncio
from typing import Awaitable, Callable, Optional, Set
from urllib.parse import urlparse

from civitai_checker.core.utils import logger

DEFAULT_SETTLE_DELAY = 0.3
DEFAULT_POLL_INTERVAL = 0.5

OnChange = Callable[[str], Awaitable[None]]
LocationSource = Callable[[], str]


def is_model_page(url: str) -> bool:
    return "/models/" in urlparse(url).path


class NavigationWatcher:
    """导航变化订阅（统一防抖）"""

    def __init__(
        self,
        on_change: OnChange,
        location_source: Optional[LocationSource] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._on_change = on_change
        self._location_source = location_source
        self.settle_delay = settle_delay
        self.poll_interval = poll_interval

        self._last_search: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._running: Set["asyncio.Task[None]"] = set()
        self._stopped = False

    # ── 触发来源 ────────────────────────────────────────────

    def notify(self, url: str) -> None:
        """单页应用导航事件"""
        if is_model_page(url):
            # 轮询随后会看到同一查询串，不再重复触发
            self._last_search = urlparse(url).query
            self._schedule(url)

    def poll_once(self) -> None:
        """检查一次当前地址的查询串是否变化"""
        if self._location_source is None:
            return
        url = self._location_source()
        search = urlparse(url).query
        if search != self._last_search and is_model_page(url):
            self._last_search = search
            logger.debug(f"  -> [Watch] 版本参数变化: ?{search}")
            self._schedule(url)

    async def run(self) -> None:
        """轮询循环，直到 stop()"""
        if self._location_source is not None:
            self._last_search = urlparse(self._location_source()).query
        while not self._stopped:
            await asyncio.sleep(self.poll_interval)
            self.poll_once()

    def stop(self) -> None:
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ── 防抖调度 ────────────────────────────────────────────

    def _schedule(self, url: str) -> None:
        if self._stopped:
            return
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.settle_delay, self._fire, url)

    def _fire(self, url: str) -> None:
        self._timer = None
        task = asyncio.ensure_future(self._invoke(url))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _invoke(self, url: str) -> None:
        try:
            await self._on_change(url)
        except Exception as e:
            # 回调失败不影响后续导航事件
            logger.warning(f"  -> [Watch] 处理导航变化失败: {e}")

    async def drain(self) -> None:
        """等待已触发的回调全部结束"""
        if self._running:
            await asyncio.gather(*self._running)

    @property
    def pending(self) -> bool:
        """是否有尚未到期的等待"""
        return self._timer is not None
