"""测试辅助模块包。"""

from .fakes import (
    FakeCodecBridge,
    FakeProcessRunner,
    FakeToolLocator,
    InMemoryOutcomeSink,
    InMemoryStatsSink,
)


__all__ = [
    "FakeCodecBridge",
    "FakeProcessRunner",
    "FakeToolLocator",
    "InMemoryOutcomeSink",
    "InMemoryStatsSink",
]
