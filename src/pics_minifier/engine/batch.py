"""批量处理编排模块。

在并发上限内调度多个压缩请求，汇报进度，支持协作式取消，
结束后把汇总写入统计存储、把每个结果写入结果日志。
"""

import threading
from collections.abc import Callable, Sequence

from ..config import get_config
from ..core.cancellation import CancellationToken
from ..core.compression_engine import CompressionEngine
from ..core.protocols import OutcomeSink, StatsSink
from ..exceptions import ErrorHandler
from ..models.constants import Reasons
from ..models.outcome import BatchProgress, BatchSummary, Outcome, OutcomeStatus
from ..models.settings import CompressionRequest
from ..utils.logging_helpers import get_logger
from ..utils.message_formatter import MessageFormatter
from .concurrent_executor import ConcurrentExecutor


logger = get_logger()

ProgressCallback = Callable[[BatchProgress], None]


class _ProgressReporter:
    """线程安全的进度计数与回调分发"""

    def __init__(self, total: int, callback: ProgressCallback | None, token: CancellationToken):
        self.total = total
        self.callback = callback
        self.token = token
        self.processed = 0
        self._lock = threading.Lock()

    def started(self, request: CompressionRequest) -> None:
        with self._lock:
            processed = self.processed
        self._emit(
            BatchProgress(
                processed=processed, total=self.total, current_file=request.display_name
            )
        )

    def finished(self, request: CompressionRequest) -> None:
        with self._lock:
            self.processed += 1
            processed = self.processed
        self._emit(
            BatchProgress(
                processed=processed, total=self.total, current_file=request.display_name
            )
        )

    def final(self) -> None:
        with self._lock:
            processed = self.processed
        self._emit(BatchProgress(processed=processed, total=self.total, final=True), force=True)

    def _emit(self, progress: BatchProgress, force: bool = False) -> None:
        if self.callback is None:
            return
        # 取消后只发送最终进度
        if not force and self.token.is_cancelled:
            return
        try:
            self.callback(progress)
        except Exception as e:
            logger.warning(f"进度回调异常: {e}")


class BatchOrchestrator:
    """批量压缩编排器

    同时运行的请求数不超过并发上限；结果按请求顺序返回。
    """

    def __init__(
        self,
        engine: CompressionEngine | None = None,
        stats_sink: StatsSink | None = None,
        outcome_sink: OutcomeSink | None = None,
        max_workers: int | None = None,
    ):
        """初始化编排器

        Args:
            engine: 单文件压缩引擎
            stats_sink: 统计存储，每批调用一次 record_batch
            outcome_sink: 结果日志，每个结果调用一次 log
            max_workers: 默认并发上限，None 时使用配置值
        """
        self.engine = engine or CompressionEngine()
        self.stats_sink = stats_sink
        self.outcome_sink = outcome_sink
        self.max_workers = max_workers or get_config().processing.MAX_WORKERS

    def run(
        self,
        requests: Sequence[CompressionRequest],
        concurrency_limit: int | None = None,
        progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[Outcome]:
        """执行一批压缩请求

        Args:
            requests: 请求列表
            concurrency_limit: 本批的并发上限，None 时使用默认值
            progress: 进度回调，可能在工作线程中被调用
            cancel_token: 取消令牌

        Returns:
            list[Outcome]: 与请求一一对应的结果
        """
        token = cancel_token or CancellationToken()
        limit = max(1, concurrency_limit or self.max_workers)
        reporter = _ProgressReporter(len(requests), progress, token)
        logger.info(f"开始批处理: {len(requests)} 个文件，并发上限 {limit}")

        def task(request: CompressionRequest) -> Outcome:
            reporter.started(request)
            return self.engine.process(request, token)

        def on_error(request: CompressionRequest, error: Exception) -> Outcome:
            return ErrorHandler.outcome_from_exception(error, request, "批处理任务")

        def on_complete(request: CompressionRequest, outcome: Outcome) -> None:
            self._log_outcome(outcome)
            reporter.finished(request)

        executor: ConcurrentExecutor[CompressionRequest, Outcome] = ConcurrentExecutor(limit)
        results = executor.execute_tasks(
            requests,
            task,
            on_error=on_error,
            on_complete=on_complete,
            stop_requested=lambda: token.is_cancelled,
        )

        outcomes: list[Outcome] = []
        for request, outcome in zip(requests, results):
            if outcome is None:
                # 取消后未开始的请求
                outcome = ErrorHandler.create_outcome(
                    request, OutcomeStatus.SKIPPED, Reasons.CANCELLED
                )
                self._log_outcome(outcome)
            outcomes.append(outcome)

        summary = BatchSummary.from_outcomes(outcomes, cancelled=token.is_cancelled)
        self._record_summary(summary)
        reporter.final()
        logger.info(MessageFormatter.batch_finished(summary.get_summary(), summary.cancelled))
        return outcomes

    def _log_outcome(self, outcome: Outcome) -> None:
        if self.outcome_sink is None:
            return
        try:
            self.outcome_sink.log(outcome)
        except Exception as e:
            logger.warning(f"写入结果日志失败: {e}")

    def _record_summary(self, summary: BatchSummary) -> None:
        if self.stats_sink is None:
            return
        try:
            self.stats_sink.record_batch(summary)
        except Exception as e:
            logger.warning(f"更新统计失败: {e}")
