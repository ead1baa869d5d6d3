"""
Aria2 Download Sink

特权下载上下文的生产实现：接收下载请求消息，确定保存目录后以子进程方式启动 aria2c。
传输一旦开始即返回 downloadId，不等待下载完成；需要结果时调用 wait()。

文件管理说明 (基于 aria2 官方文档):
- .aria2 控制文件: 与下载文件同目录，用于断点续传，下载完成后自动删除
- --disk-cache: 是内存缓存，不产生磁盘文件
"""
import asyncio
import itertools
import logging
import shutil
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from civitai_checker.core.ports import IDownloadSink
from civitai_checker.lib.config import Aria2Config
from civitai_checker.lib.download.civitai import get_api_token, get_proxy

logger = logging.getLogger("civitai_checker")

# 交互式选择保存目录: (默认目录) -> 目录，返回 None 表示用户取消
AskDirectory = Callable[[str], Awaitable[Optional[str]]]


def _failure(error: str) -> Dict[str, Any]:
    return {"success": False, "error": error}


class Aria2DownloadSink(IDownloadSink):
    """基于 aria2c 的 Download Sink

    配置段 (config.yaml → aria2):
        connections:     每服务器最大连接数（默认 16，aria2 上限）
        split_size:      最小分片大小 MB（默认 5）
        max_retries:     最大重试次数（默认 5）
        timeout:         传输超时秒数（默认 30）
        connect_timeout: 连接超时秒数（默认 10）
        retry_wait:      重试等待秒数（默认 3）

    文档: https://aria2.github.io/manual/en/html/aria2c.html
    """

    def __init__(self, config: Optional[Aria2Config] = None, ask_directory: Optional[AskDirectory] = None) -> None:
        self._config = config or Aria2Config()
        self._ask_directory = ask_directory
        self._ids = itertools.count(1)
        self._jobs: Dict[str, Tuple[asyncio.subprocess.Process, Path]] = {}

    # ── 可用性 ──────────────────────────────────────────────

    def is_available(self) -> bool:
        return shutil.which("aria2c") is not None

    # ── 辅助方法 ────────────────────────────────────────────

    def _log_proxy_settings(self) -> None:
        """记录当前代理设置（用于调试）"""
        proxy = get_proxy()
        if proxy:
            logger.info(f"  -> [aria2] 代理: {proxy}")
        else:
            logger.debug("  -> [aria2] 未配置代理")

    async def _resolve_target_dir(self, save_as: bool, default_dir: str) -> Optional[Path]:
        """确定保存目录；强制交互时询问用户，返回 None 表示用户取消"""
        directory: Optional[str] = default_dir
        if save_as and self._ask_directory is not None:
            directory = await self._ask_directory(default_dir)
        if not directory:
            return None
        return Path(directory).expanduser()

    def build_command(self, url: str, target_path: Path) -> List[str]:
        cfg = self._config
        cmd: List[str] = [
            "aria2c",
            # === 连接与分片 ===
            "--max-connection-per-server", str(cfg.connections),
            "--split",                     str(cfg.connections),
            "--min-split-size",            f"{cfg.split_size}M",
            # === 重试与超时 ===
            "--max-tries",                 str(cfg.max_retries),
            "--timeout",                   str(cfg.timeout),
            "--connect-timeout",           str(cfg.connect_timeout),
            "--retry-wait",                str(cfg.retry_wait),
            # === 断点续传与覆盖 ===
            "--continue=true",
            "--auto-file-renaming=false",
            "--allow-overwrite=true",
            # === 日志与输出（保持静默） ===
            "--console-log-level=warn",
            "--summary-interval=0",
            "--download-result=hide",
            # === 目标路径 ===
            "--dir", str(target_path.parent),
            "--out", target_path.name,
        ]

        # 需要登录的模型依赖 Token
        token = get_api_token()
        if token:
            cmd += ["--header", f"Authorization: Bearer {token}"]

        cmd.append(url)
        return cmd

    # ── 消息处理 ────────────────────────────────────────────

    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        if message.get("action") != "download":
            return _failure(f"未知动作: {message.get('action')}")

        url = message.get("url")
        file_name = message.get("fileName")
        if not url or not file_name:
            return _failure("下载请求缺少 url 或 fileName")

        settings = message.get("settings") or {}
        target_dir = await self._resolve_target_dir(
            bool(message.get("saveAs")),
            settings.get("downloadDir") or ".",
        )
        if target_dir is None:
            return _failure("已取消保存位置选择")

        if not self.is_available():
            return _failure("aria2c 未安装，请运行: apt install aria2")

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return _failure(f"无法创建目录 {target_dir}: {e}")

        target_path = target_dir / file_name
        self._log_proxy_settings()
        logger.info(f"  -> [aria2] 启动 {self._config.connections} 线程下载: {target_path}")

        try:
            process = await asyncio.create_subprocess_exec(*self.build_command(url, target_path))
        except OSError as e:
            return _failure(f"aria2 启动失败: {e}")

        download_id = str(next(self._ids))
        self._jobs[download_id] = (process, target_path)
        return {"success": True, "downloadId": download_id}

    # ── 下载生命周期 ─────────────────────────────────────────

    async def wait(self, download_id: str) -> bool:
        """等待指定下载结束

        Returns:
            True 下载成功且文件存在，False 失败或 ID 未知
        """
        job = self._jobs.pop(download_id, None)
        if job is None:
            return False

        process, target_path = job
        returncode = await process.wait()
        success = returncode == 0 and target_path.exists()
        if success:
            self._cleanup_control_file(target_path)
        else:
            logger.error(f"  -> [aria2] 下载失败 (returncode={returncode}): {target_path.name}")
        return success

    @staticmethod
    def _cleanup_control_file(target_path: Path) -> None:
        """清理 aria2 产生的 .aria2 控制文件"""
        aria2_ctrl = Path(str(target_path) + ".aria2")
        if aria2_ctrl.exists():
            try:
                aria2_ctrl.unlink()
                logger.debug(f"  -> [aria2] 已清理控制文件: {aria2_ctrl.name}")
            except OSError as e:
                logger.debug(f"  -> [aria2] 清理控制文件失败: {e}")

    @property
    def pending_ids(self) -> List[str]:
        return list(self._jobs.keys())
