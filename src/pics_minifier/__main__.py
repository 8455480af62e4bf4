"""命令行入口: python -m pics_minifier [选项] 文件...

对给定文件执行一次批量压缩并打印汇总。
"""

import argparse
import sys
from pathlib import Path

from . import __version__
from .config import get_config
from .core.compression_engine import CompressionEngine
from .core.tools import ToolLocator
from .engine.batch import BatchOrchestrator
from .exceptions import ConfigurationError
from .models.constants import ToolNames
from .models.outcome import BatchProgress, OutcomeStatus
from .models.settings import (
    CompressionRequest,
    Preset,
    ResizeCondition,
    ResizeSpec,
    SaveMode,
    Settings,
)
from .sinks.csv_log import SafeCSVLogger
from .sinks.stats import SafeStatsStore
from .utils.logging_helpers import configure_logging, get_logger


logger = get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pics-minifier", description="批量压缩图像文件")
    parser.add_argument("files", nargs="*", type=Path, help="待压缩的图像文件")
    parser.add_argument(
        "--preset",
        choices=[p.value for p in Preset if p != Preset.CUSTOM],
        default=Preset.BALANCED.value,
        help="压缩预设（默认 balanced）",
    )
    parser.add_argument(
        "--save-mode",
        choices=[m.value for m in SaveMode],
        default=SaveMode.SUFFIX.value,
        help="保存方式（默认 suffix）",
    )
    parser.add_argument("--workers", type=int, default=None, help="并发数")
    parser.add_argument("--no-gifsicle", action="store_true", help="不处理 GIF")
    parser.add_argument("--gif-lossy", action="store_true", help="GIF 有损优化")
    parser.add_argument("--strip-metadata", action="store_true", help="不保留元数据")
    parser.add_argument("--srgb", action="store_true", help="转换到 sRGB 色彩空间")
    parser.add_argument("--resize", type=int, default=None, metavar="PIXELS", help="缩放目标像素")
    parser.add_argument(
        "--resize-by",
        choices=[c.value for c in ResizeCondition],
        default=ResizeCondition.FIT.value,
        help="缩放基准（默认 fit，即最长边）",
    )
    parser.add_argument(
        "--require-tool",
        action="append",
        default=[],
        choices=ToolNames.ALL,
        metavar="TOOL",
        help="要求该外部工具可用，否则不处理任何文件（可重复）",
    )
    parser.add_argument("--no-csv-log", action="store_true", help="不写入 CSV 结果日志")
    parser.add_argument("--log-level", default=None, help="日志级别")
    parser.add_argument("--check-tools", action="store_true", help="检查外部压缩工具并退出")
    parser.add_argument("--version", "-v", action="version", version=f"pics-minifier {__version__}")
    return parser


def _print_progress(progress: BatchProgress) -> None:
    if progress.final:
        return
    if progress.current_file:
        print(
            f"[{progress.processed}/{progress.total} {progress.fraction:.0%}] {progress.current_file}",
            file=sys.stderr,
        )


def main(argv: list[str] | None = None) -> int:
    """主入口函数"""
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)
    logger.debug(f"生效配置: {get_config().as_dict()}")

    if args.check_tools:
        for line in ToolLocator().availability().installation_instructions():
            print(line)
        return 0

    if not args.files:
        build_parser().print_usage(sys.stderr)
        return 2

    if args.resize is not None and args.resize <= 0:
        build_parser().error("--resize 必须大于 0")

    tools = ToolLocator()
    try:
        for tool in args.require_tool:
            tools.require(tool)
    except ConfigurationError as e:
        print(e.message, file=sys.stderr)
        return 2

    settings = Settings(
        preset=args.preset,
        save_mode=args.save_mode,
        preserve_metadata=not args.strip_metadata,
        convert_to_srgb=args.srgb,
        resize=ResizeSpec(
            enabled=args.resize is not None,
            target_pixels=args.resize or 0,
            condition=args.resize_by,
        ),
        enable_gifsicle=not args.no_gifsicle,
        enable_gif_lossy=args.gif_lossy,
    )
    files = [path.expanduser().absolute() for path in args.files]
    requests = [CompressionRequest(source_path=path, settings=settings) for path in files]

    # 命令行显式给出的文件所在目录视为已授权的工作目录
    engine = CompressionEngine(tools=tools, working_dirs={path.parent for path in files})
    stats = SafeStatsStore()
    csv_enabled = get_config().logging.ENABLE_CSV_LOG and not args.no_csv_log
    orchestrator = BatchOrchestrator(
        engine,
        stats_sink=stats,
        outcome_sink=SafeCSVLogger(enabled=csv_enabled),
        max_workers=args.workers,
    )

    outcomes = orchestrator.run(requests, progress=_print_progress)
    for outcome in outcomes:
        print(f"{outcome.original_path.name}: {outcome.get_summary()}")

    snapshot = stats.snapshot()
    print(
        f"完成 {snapshot.successful_files}/{snapshot.total_files}，"
        f"共节省 {snapshot.get_saved_human()}"
    )
    return 1 if any(o.status == OutcomeStatus.ERROR for o in outcomes) else 0


if __name__ == "__main__":
    sys.exit(main())
