"""并发执行器模块。

滑动窗口式的线程池执行：先提交不超过并发上限的任务，
每完成一个再补充一个，保证同时运行的任务数不超过上限。
"""

from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Generic, TypeVar

from ..utils.logging_helpers import get_logger


logger = get_logger()

T = TypeVar("T")
R = TypeVar("R")


class ConcurrentExecutor(Generic[T, R]):
    """通用滑动窗口执行器

    结果按输入顺序返回；因 stop_requested 而未提交的任务对应位置为 None。
    """

    def __init__(self, max_workers: int = 4):
        """初始化并发执行器

        Args:
            max_workers: 最大并发数
        """
        self.max_workers = max(1, max_workers)

    def execute_tasks(
        self,
        tasks: Sequence[T],
        task_function: Callable[[T], R],
        on_error: Callable[[T, Exception], R],
        on_complete: Callable[[T, R], None] | None = None,
        stop_requested: Callable[[], bool] | None = None,
    ) -> list[R | None]:
        """执行并发任务

        Args:
            tasks: 任务列表
            task_function: 在工作线程中执行的函数
            on_error: task_function 抛出异常时生成替代结果
            on_complete: 每个任务完成后在调度线程中调用
            stop_requested: 返回 True 后不再提交新任务

        Returns:
            list[R | None]: 与 tasks 一一对应的结果
        """
        results: list[R | None] = [None] * len(tasks)
        if not tasks:
            return results

        workers = min(self.max_workers, len(tasks))
        pending = iter(enumerate(tasks))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pics-worker") as executor:
            future_to_task: dict[Future[R], tuple[int, T]] = {}
            # 提交初始窗口
            self._submit_tasks(
                executor, pending, task_function, future_to_task, workers, stop_requested
            )

            while future_to_task:
                done, _ = wait(future_to_task, return_when=FIRST_COMPLETED)
                for future in done:
                    index, task = future_to_task.pop(future)
                    results[index] = self._collect_result(future, task, on_error)
                    if on_complete is not None:
                        on_complete(task, results[index])

                # 每完成一个补充一个
                self._submit_tasks(
                    executor, pending, task_function, future_to_task, workers, stop_requested
                )

        return results

    @staticmethod
    def _submit_tasks(
        executor: ThreadPoolExecutor,
        pending: Iterator[tuple[int, T]],
        task_function: Callable[[T], R],
        future_to_task: dict[Future[R], tuple[int, T]],
        limit: int,
        stop_requested: Callable[[], bool] | None,
    ) -> None:
        """把任务补充到窗口上限"""
        while len(future_to_task) < limit:
            if stop_requested is not None and stop_requested():
                return
            try:
                index, task = next(pending)
            except StopIteration:
                return
            future_to_task[executor.submit(task_function, task)] = (index, task)

    @staticmethod
    def _collect_result(
        future: Future[R], task: T, on_error: Callable[[T, Exception], R]
    ) -> R:
        try:
            return future.result()
        except Exception as e:
            logger.error(f"并发任务异常: {e}")
            return on_error(task, e)
