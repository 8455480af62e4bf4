"""协作式取消令牌。"""

import threading

from ..exceptions import OperationCancelled


class CancellationToken:
    """线程安全的取消标记

    批处理的所有工作线程共享同一个令牌；引擎在检查点调用 raise_if_cancelled。
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, checkpoint: str = "") -> None:
        """已取消时抛出 OperationCancelled

        Args:
            checkpoint: 检查点名称，用于日志
        """
        if self._event.is_set():
            raise OperationCancelled(f"操作已取消{f'（{checkpoint}）' if checkpoint else ''}")
