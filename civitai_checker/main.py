#!/usr/bin/env python3
"""
Civitai Checker 命令行入口

检查 Civitai 模型版本是否已下载，并按文件名模板下载。
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from civitai_checker.core.adapters import JsonFileStore
from civitai_checker.core.errors import CheckerError, ConfigError
from civitai_checker.core.interface import AppContext
from civitai_checker.core.ports import IPageState
from civitai_checker.core.utils import logger, setup_logger
from civitai_checker.lib import ui
from civitai_checker.lib.cache import CacheStore, import_cm_info
from civitai_checker.lib.checker import CheckResult, CheckStatus, ModelChecker
from civitai_checker.lib.config import AppConfig, load_config
from civitai_checker.lib.download.aria2 import Aria2DownloadSink
from civitai_checker.lib.download.civitai import MetadataResolver, parse_civitai_url
from civitai_checker.lib.download.orchestrator import DownloadOrchestrator, HandoffStatus
from civitai_checker.lib.download.settings import DownloadSettings, SettingsStore
from civitai_checker.lib.page import HarPageState, NavigationWatcher, StaticPageState, VersionIdentifier
from civitai_checker.lib.utils import format_timestamp


def create_context(config: AppConfig) -> AppContext:
    """构建应用上下文（宿主适配器只在这里创建一次）"""
    store = JsonFileStore(config.store_path.expanduser())
    cache = CacheStore(store)
    settings = SettingsStore(store)
    resolver = MetadataResolver(config.api_base, timeout=config.request_timeout)
    sink = Aria2DownloadSink(config.aria2, ask_directory=ui.prompt_directory)
    orchestrator = DownloadOrchestrator(
        resolver,
        cache,
        settings,
        sink,
        api_base=config.api_base,
        handoff_timeout=config.handoff_timeout,
    )
    return AppContext(
        config=config,
        store=store,
        sink=sink,
        cache=cache,
        settings=settings,
        resolver=resolver,
        orchestrator=orchestrator,
    )


def _make_page(url: str, har: Optional[Path]) -> IPageState:
    if har:
        return HarPageState(har, url)
    return StaticPageState(url)


def render_check(result: CheckResult) -> None:
    """展示检查结果"""
    if result.status == CheckStatus.UNRESOLVED:
        ui.print_warning("无法确定版本 ID（URL 中没有 modelVersionId，请求记录中也未找到）")
        return
    if result.status == CheckStatus.NO_METADATA or result.model_info is None:
        ui.print_warning(f"无法获取模型信息 (versionId={result.version_id})")
        return

    info = result.model_info
    if result.status == CheckStatus.DOWNLOADED and result.cached:
        cached = result.cached
        ui.print_panel(
            f"✓ 已下载: {cached.version_name or info.version_name}",
            f"模型: {cached.model_name}\n"
            f"版本: {cached.version_name}\n"
            f"类型: {cached.model_type}\n"
            f"导入时间: {format_timestamp(cached.imported_at) or '-'}\n"
            f"Key: {cached.key}",
            style="green",
        )
        return

    ui.print_panel(
        f"未下载: {info.version_name}",
        f"模型: {info.model_name}\n"
        f"版本: {info.version_name}\n"
        f"类型: {info.model_type}\n"
        f"基底模型: {info.base_model or '-'}\n\n"
        f"下载: civitai-checker download {info.version_id}",
        style="yellow",
    )


# ============================================================
# CLI 命令 - check
# ============================================================
async def cmd_check(ctx: AppContext, url: str, har: Optional[Path]) -> int:
    """检查页面对应的模型版本是否已下载"""
    page = _make_page(url, har)
    checker = ModelChecker(VersionIdentifier(page, ctx.config.scan_delay), ctx.resolver, ctx.cache)
    result = await checker.check()
    render_check(result)
    return 0 if result.status in (CheckStatus.DOWNLOADED, CheckStatus.NOT_DOWNLOADED) else 1


# ============================================================
# CLI 命令 - download
# ============================================================
async def _resolve_target_version(ctx: AppContext, target: str, har: Optional[Path]) -> Optional[int]:
    """版本 ID 可以直接给出，也可以是页面 URL / API 下载链接"""
    if target.isdigit():
        return int(target)

    parsed = parse_civitai_url(target)
    if parsed["is_api_url"] and parsed["version_id"]:
        return parsed["version_id"]

    identifier = VersionIdentifier(_make_page(target, har), ctx.config.scan_delay)
    return await identifier.resolve_current_version_id()


async def _wait_for_transfers(ctx: AppContext, file_name: str) -> bool:
    """等待交接与 aria2 传输结束

    超时未确认的交接可能随后失败（例如取消了保存位置选择），此时不会有传输开始。
    """
    late_failures = [r for r in await ctx.orchestrator.drain() if r.status == HandoffStatus.FAILED]
    if late_failures:
        for result in late_failures:
            ui.print_error(f"下载失败: {file_name} ({result.error})")
        return False
    if not isinstance(ctx.sink, Aria2DownloadSink):
        return True

    ok = True
    for download_id in ctx.sink.pending_ids:
        ok = await ctx.sink.wait(download_id) and ok
    if ok:
        ui.print_success(f"下载完成: {file_name}")
    else:
        ui.print_error(f"下载失败: {file_name}")
    return ok


async def cmd_download(ctx: AppContext, target: str, har: Optional[Path], yes: bool, wait: bool) -> int:
    """下载模型版本"""
    version_id = await _resolve_target_version(ctx, target, har)
    if version_id is None:
        ui.print_error("无法确定版本 ID")
        return 1

    ui.print_info(f"正在获取模型信息 (versionId={version_id})...")
    info = await ctx.resolver.get_model_info(version_id)
    if info is None:
        ui.print_error("无法获取模型信息")
        return 1

    cached = await ctx.cache.get(info.model_id, info.version_id)
    if cached and not yes:
        ui.print_warning(f"该版本已下载 (导入时间: {format_timestamp(cached.imported_at) or '-'})")
        if not await ui.prompt_confirm("仍要下载？", default=False):
            ui.print_info("已取消")
            return 0

    settings = ctx.settings.current
    ui.print_panel(
        "下载模型",
        f"模型: {info.model_name}\n"
        f"版本: {info.version_name}\n"
        f"文件名: {ctx.orchestrator.build_file_name(info, settings)}",
    )

    outcome = await ctx.orchestrator.download_model(version_id, info)
    if outcome.timed_out:
        ui.print_warning("未收到下载确认，下载可能已开始")
    else:
        ui.print_success(f"下载已开始: {outcome.file_name}")
    if outcome.cache_key:
        ui.print_info(f"已加入缓存: {outcome.cache_key}")

    if wait:
        return 0 if await _wait_for_transfers(ctx, outcome.file_name) else 1
    return 0


# ============================================================
# CLI 命令 - watch
# ============================================================
async def cmd_watch(ctx: AppContext, start_url: Optional[str], har: Optional[Path]) -> int:
    """持续跟随页面导航（从标准输入逐行读取 URL）"""
    page = HarPageState(har, start_url or "") if har else StaticPageState(start_url or "")
    checker = ModelChecker(VersionIdentifier(page, ctx.config.scan_delay), ctx.resolver, ctx.cache)

    async def on_change(url: str) -> None:
        result = await checker.check()
        # 结果返回前页面可能已再次导航
        if page.location != url:
            logger.debug(f"  -> [Watch] 页面已变化，丢弃过期结果: {url}")
            return
        render_check(result)

    watcher = NavigationWatcher(
        on_change,
        location_source=lambda: page.location,
        settle_delay=ctx.config.settle_delay,
        poll_interval=ctx.config.poll_interval,
    )
    poll_task = asyncio.create_task(watcher.run())
    if start_url:
        watcher.notify(start_url)

    ui.print_info("逐行输入页面 URL 模拟导航，Ctrl+D 结束")
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            break
        url = line.strip()
        if not url:
            continue
        page.navigate(url)
        watcher.notify(url)

    # 输入结束时仍在防抖等待的导航照常处理
    while watcher.pending:
        await asyncio.sleep(watcher.settle_delay)
    watcher.stop()
    await poll_task
    await watcher.drain()
    return 0


# ============================================================
# CLI 命令 - cache (缓存管理)
# ============================================================
async def cmd_cache_list(cache: CacheStore) -> int:
    """列出缓存中的模型"""
    stats = await cache.get_stats()
    if not stats.count:
        ui.print_info("缓存为空，可通过 cache import 从 .cm-info.json 导入")
        return 0

    rows: List[List[str]] = []
    for key, record in sorted(stats.models.items()):
        rows.append([
            key,
            record.model_name,
            record.version_name,
            record.model_type,
            record.base_model,
            format_timestamp(record.imported_at),
        ])

    ui.print_table(
        title=f"已下载模型 ({stats.count} 个)",
        columns=["Key", "模型", "版本", "类型", "基底模型", "导入时间"],
        rows=rows,
    )
    return 0


async def cmd_cache_remove(cache: CacheStore, key: str) -> int:
    if not await cache.has(*_split_key(key)):
        ui.print_warning(f"缓存中不存在: {key}")
        return 0
    await cache.remove(key)
    ui.print_success(f"已从缓存移除: {key}")
    return 0


def _split_key(key: str) -> List[int]:
    """"{modelId}-{versionId}" -> [modelId, versionId]"""
    parts = key.split("-")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise CheckerError(f"无效的缓存 Key: {key}（格式: modelId-versionId）")
    return [int(p) for p in parts]


async def cmd_cache_clear(cache: CacheStore, force: bool) -> int:
    if not force:
        ui.print_warning("此操作将清空全部已下载记录，已下载的文件不受影响。")
        if not await ui.prompt_confirm("确认清空？", default=False):
            ui.print_info("已取消")
            return 0
    await cache.clear()
    ui.print_success("缓存已清空")
    return 0


async def cmd_cache_import(cache: CacheStore, directory: Path) -> int:
    if not directory.is_dir():
        ui.print_error(f"目录不存在: {directory}")
        return 1

    result = await import_cm_info(directory, cache)
    for failure in result.errors:
        ui.print_warning(f"解析失败: {failure.file} ({failure.error})")

    if not result.success:
        ui.print_warning("未找到有效的 .cm-info.json 文件，缓存未修改")
        return 1
    ui.print_success(f"已导入 {result.count} 个模型")
    return 0


# ============================================================
# CLI 命令 - settings
# ============================================================
def _settings_aliases() -> dict:
    """持久化字段名 -> 字段名"""
    return {f.alias or name: name for name, f in DownloadSettings.model_fields.items()}


def _parse_setting_value(field_name: str, value: str) -> Any:
    if DownloadSettings.model_fields[field_name].annotation is str:
        return value
    try:
        return json.loads(value)
    except ValueError:
        return value


async def cmd_settings_show(settings: SettingsStore) -> int:
    rows = [[key, json.dumps(value, ensure_ascii=False)] for key, value in settings.current.to_storage().items()]
    ui.print_table(title="下载设置", columns=["设置项", "值"], rows=rows)
    return 0


async def cmd_settings_set(settings: SettingsStore, key: str, value: str) -> int:
    aliases = _settings_aliases()
    if key not in aliases:
        ui.print_error(f"未知设置项: {key}")
        ui.print_info(f"可用设置项: {', '.join(aliases)}")
        return 1
    await settings.save({key: _parse_setting_value(aliases[key], value)})
    ui.print_success(f"{key} 已更新")
    return 0


async def cmd_settings_reset(settings: SettingsStore) -> int:
    await settings.reset()
    ui.print_success("已恢复默认设置")
    return 0


# ============================================================
# 入口
# ============================================================
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="civitai-checker",
        description="Civitai 模型下载检查器",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
环境变量:
  CIVITAI_API_TOKEN       CivitAI API Token
  CIVITAI_CHECKER_CONFIG  配置文件路径 (默认 ~/.config/civitai-checker/config.yaml)

示例:
  civitai-checker check "https://civitai.com/models/12345?modelVersionId=67890"
  civitai-checker check https://civitai.com/models/12345 --har page.har
  civitai-checker download 67890
  civitai-checker watch --har page.har

缓存管理:
  civitai-checker cache list
  civitai-checker cache remove 12345-67890
  civitai-checker cache import /path/to/models
        """
    )
    parser.add_argument("--debug", action="store_true", help="调试模式")
    parser.add_argument("--config", type=Path, help="配置文件路径")
    sub = parser.add_subparsers(dest="cmd")

    check = sub.add_parser("check", help="检查模型版本是否已下载")
    check.add_argument("url", help="模型页面 URL")
    check.add_argument("--har", type=Path, help="页面请求记录 (HAR 文件)")

    dl = sub.add_parser("download", help="下载模型版本")
    dl.add_argument("target", help="版本 ID、模型页面 URL 或 API 下载链接")
    dl.add_argument("--har", type=Path, help="页面请求记录 (HAR 文件)")
    dl.add_argument("-y", "--yes", action="store_true", help="已下载时不再确认")
    dl.add_argument("--no-wait", action="store_true", help="开始下载后立即返回")

    watch = sub.add_parser("watch", help="跟随页面导航持续检查")
    watch.add_argument("--url", help="起始页面 URL")
    watch.add_argument("--har", type=Path, help="页面请求记录 (HAR 文件)")

    cache_parser = sub.add_parser("cache", help="缓存管理")
    cache_sub = cache_parser.add_subparsers(dest="cache_cmd")
    cache_sub.add_parser("list", help="列出已下载模型")
    cache_sub.add_parser("stats", help="缓存统计")
    cache_remove = cache_sub.add_parser("remove", help="从缓存移除")
    cache_remove.add_argument("key", help="缓存 Key (modelId-versionId)")
    cache_clear = cache_sub.add_parser("clear", help="清空缓存")
    cache_clear.add_argument("-f", "--force", action="store_true", help="跳过确认")
    cache_import = cache_sub.add_parser("import", help="从 .cm-info.json 重建缓存")
    cache_import.add_argument("directory", type=Path, help="模型目录")

    settings_parser = sub.add_parser("settings", help="下载设置")
    settings_sub = settings_parser.add_subparsers(dest="settings_cmd")
    settings_sub.add_parser("show", help="显示当前设置")
    settings_set = settings_sub.add_parser("set", help="修改设置项")
    settings_set.add_argument("key", help="设置项，如 fileNameTemplate")
    settings_set.add_argument("value", help="新值（布尔值用 true/false）")
    settings_sub.add_parser("reset", help="恢复默认设置")

    return parser


async def run_command(args: argparse.Namespace, ctx: AppContext) -> int:
    """执行子命令，业务异常在此统一展示"""
    await ctx.settings.init()

    try:
        if args.cmd == "check":
            return await cmd_check(ctx, args.url, args.har)
        if args.cmd == "download":
            return await cmd_download(ctx, args.target, args.har, args.yes, wait=not args.no_wait)
        if args.cmd == "watch":
            return await cmd_watch(ctx, args.url, args.har)
        if args.cmd == "cache":
            if args.cache_cmd in (None, "list"):
                return await cmd_cache_list(ctx.cache)
            if args.cache_cmd == "stats":
                stats = await ctx.cache.get_stats()
                ui.print_info(f"缓存中共有 {stats.count} 个模型")
                return 0
            if args.cache_cmd == "remove":
                return await cmd_cache_remove(ctx.cache, args.key)
            if args.cache_cmd == "clear":
                return await cmd_cache_clear(ctx.cache, args.force)
            if args.cache_cmd == "import":
                return await cmd_cache_import(ctx.cache, args.directory)
        if args.cmd == "settings":
            if args.settings_cmd in (None, "show"):
                return await cmd_settings_show(ctx.settings)
            if args.settings_cmd == "set":
                return await cmd_settings_set(ctx.settings, args.key, args.value)
            if args.settings_cmd == "reset":
                return await cmd_settings_reset(ctx.settings)
    except CheckerError as e:
        ui.print_error(str(e))
        return 1

    return 2


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        sys.exit(2)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        ui.print_error(str(e))
        sys.exit(1)

    setup_logger(config.log_file, debug=args.debug)
    context = create_context(config)
    sys.exit(asyncio.run(run_command(args, context)))


if __name__ == "__main__":
    main()
