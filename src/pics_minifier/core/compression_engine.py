"""压缩引擎模块。

单个请求的完整处理流程：输入校验 → 格式识别 → 层级选择 → 预处理 →
逐层压缩（失败即回退到下一层级） → 原子提交。
任何情况下都返回一个 Outcome，不向调用方抛出异常。
"""

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from ..config import get_config
from ..exceptions import ErrorHandler, ProcessingError, SecurityError
from ..models.constants import ContainerFormat, Reasons
from ..models.outcome import Outcome, OutcomeStatus
from ..models.settings import CompressionRequest, Settings
from ..utils.cleanup_helpers import TempFileManager
from ..utils.logging_helpers import get_logger
from ..utils.message_formatter import MessageFormatter
from .cancellation import CancellationToken
from .encoders import encode_with_embedded_codec, encode_with_system_codec, run_external_tool
from .formats import detect_format
from .preprocess import prepare_working_file
from .process_runner import SecureProcessRunner
from .protocols import CodecBridge, ProcessRunner, ToolResolver
from .security import PathValidator
from .strategy import EmbeddedCodec, ExternalTool, Strategy, StrategySelector, SystemCodec, Unavailable
from .tools import ToolLocator
from .webp_bridge import WebPCodecBridge
from .writer import AtomicOutputWriter, plan_output_path


logger = get_logger()


@dataclass
class _JobState:
    """异常转换时仍需要的已知信息"""

    source_format: str = "unknown"
    original_size: int | None = None


class CompressionEngine:
    """单文件压缩引擎

    所有协作者均可注入；未提供时使用真实实现。引擎本身无可变状态，可被多个线程共享。
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        tools: ToolResolver | None = None,
        bridge: CodecBridge | None = None,
        writer: AtomicOutputWriter | None = None,
        validator: PathValidator | None = None,
        working_dirs: Iterable[str | Path] = (),
    ):
        """初始化引擎

        Args:
            runner: 外部进程执行器
            tools: 外部工具定位器
            bridge: 内嵌 WebP 编解码桥接
            writer: 原子输出写入器
            validator: 路径校验器
            working_dirs: 额外授权的工作目录
        """
        self.validator = validator or PathValidator()
        self.runner = runner or SecureProcessRunner(self.validator)
        self.tools = tools or ToolLocator()
        self.bridge = bridge or WebPCodecBridge()
        self.writer = writer or AtomicOutputWriter()
        self.selector = StrategySelector(self.tools, self.bridge)
        self.working_dirs = [Path(p).expanduser() for p in working_dirs]

    def process(
        self, request: CompressionRequest, cancel_token: CancellationToken | None = None
    ) -> Outcome:
        """处理单个压缩请求

        Args:
            request: 压缩请求
            cancel_token: 取消令牌

        Returns:
            Outcome: 该请求唯一的结果
        """
        state = _JobState()
        try:
            return self._process(request, cancel_token or CancellationToken(), state)
        except Exception as e:
            # 统一的异常处理，确保总是返回 Outcome
            return ErrorHandler.outcome_from_exception(
                e, request, "图像压缩引擎", state.source_format, state.original_size
            )

    def _process(
        self, request: CompressionRequest, token: CancellationToken, state: _JobState
    ) -> Outcome:
        settings = request.settings
        token.raise_if_cancelled("读取输入前")

        try:
            source = self.validator.validate_file_path(request.source_path, self.working_dirs)
        except SecurityError as e:
            logger.warning(MessageFormatter.format_error("输入校验", request.source_path, e))
            return ErrorHandler.create_outcome(
                request, OutcomeStatus.ERROR, Reasons.INVALID_INPUT_PATH, original_size=0
            )

        if not source.is_file():
            logger.warning(MessageFormatter.file_not_found(source))
            return ErrorHandler.create_outcome(
                request, OutcomeStatus.ERROR, Reasons.FILE_NOT_FOUND, original_size=0
            )

        original_size = source.stat().st_size
        state.original_size = original_size
        if too_large := self._check_size_ceiling(request, original_size):
            return too_large

        container, format_name = detect_format(source)
        strategies: list[Strategy] = []
        if format_name is not None:
            state.source_format = (
                container.value if container != ContainerFormat.UNSUPPORTED else format_name
            )
            strategies = self.selector.select_strategies(container, settings)
            # 被禁用或无可用层级的格式按该原因跳过，先于体积下限判断
            if isinstance(strategies[0], Unavailable):
                logger.info(f"跳过 {source.name}: {strategies[0].reason}")
                return ErrorHandler.create_outcome(
                    request,
                    OutcomeStatus.SKIPPED,
                    strategies[0].reason,
                    source_format=state.source_format,
                    original_size=original_size,
                )

        if original_size < get_config().processing.MIN_FILE_SIZE_BYTES:
            return ErrorHandler.create_outcome(
                request,
                OutcomeStatus.SKIPPED,
                Reasons.FILE_TOO_SMALL,
                source_format=state.source_format,
                original_size=original_size,
            )

        if format_name is None:
            return ErrorHandler.create_outcome(
                request,
                OutcomeStatus.SKIPPED,
                Reasons.UNKNOWN_CONTENT_TYPE,
                original_size=original_size,
            )

        destination = plan_output_path(source, settings.save_mode, self.validator)
        working_dirs = [*self.working_dirs, source.parent, destination.parent]

        with TempFileManager() as temps:
            working = self._preprocess(source, container, settings, temps) or source

            for strategy in strategies:
                token.raise_if_cancelled("调用编码器前")
                output = self.writer.allocate_temp(destination, temps)
                try:
                    reason = self._run_tier(
                        strategy, container, working, output, settings, working_dirs
                    )
                    token.raise_if_cancelled("提交前")
                    outcome = self.writer.commit(
                        output,
                        destination,
                        source,
                        original_size,
                        reason=reason,
                        source_format=state.source_format,
                        request_id=request.request_id,
                    )
                except (SecurityError, ProcessingError, OSError) as e:
                    logger.warning(MessageFormatter.tier_failed(strategy.name, source, e))
                    continue

                logger.info(f"{source.name}: {outcome.get_summary()}")
                return outcome

        logger.error(f"{source.name} 的所有压缩层级均失败")
        return ErrorHandler.create_outcome(
            request,
            OutcomeStatus.ERROR,
            Reasons.ALL_TIERS_FAILED,
            source_format=state.source_format,
            original_size=original_size,
        )

    @staticmethod
    def _check_size_ceiling(request: CompressionRequest, size: int) -> Outcome | None:
        if size > get_config().processing.max_file_size_bytes:
            logger.warning(f"{request.display_name} 超过大小上限 ({size} 字节)")
            return ErrorHandler.create_outcome(
                request, OutcomeStatus.ERROR, Reasons.FILE_TOO_LARGE, original_size=size
            )
        return None

    @staticmethod
    def _preprocess(
        source: Path, container: ContainerFormat, settings: Settings, temps: TempFileManager
    ) -> Path | None:
        """预处理失败时记录警告并继续使用原始文件"""
        try:
            return prepare_working_file(source, container, settings, temps)
        except ProcessingError as e:
            logger.warning(MessageFormatter.format_error("预处理", source, e))
            return None

    def _run_tier(
        self,
        strategy: Strategy,
        container: ContainerFormat,
        source: Path,
        output: Path,
        settings: Settings,
        working_dirs: list[Path],
    ) -> str:
        """执行一个压缩层级，返回成功原因码"""
        match strategy:
            case ExternalTool(tool=tool):
                run_external_tool(self.runner, strategy, source, output, settings, working_dirs)
                return Reasons.TOOL_SUCCESS[tool]
            case EmbeddedCodec():
                encode_with_embedded_codec(self.bridge, source, output, settings)
                return Reasons.EMBEDDED_WEBP
            case SystemCodec():
                encode_with_system_codec(container, source, output, settings)
                return Reasons.SYSTEM_CODEC
            case _:
                raise ProcessingError(f"层级 {strategy.name} 不可执行", source)


_default_engine: CompressionEngine | None = None


def process_image(
    request: CompressionRequest, cancel_token: CancellationToken | None = None
) -> Outcome:
    """使用默认引擎处理单个请求"""
    global _default_engine
    if _default_engine is None:
        _default_engine = CompressionEngine()
    return _default_engine.process(request, cancel_token)
