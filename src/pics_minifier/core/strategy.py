"""压缩层级选择模块。

把 (容器格式, 设置) 映射为按优先级排列的压缩层级列表，
由 compression_engine 中的通用分发循环依次尝试。
"""

from dataclasses import dataclass
from pathlib import Path

from ..models.constants import ContainerFormat, ImageFormats, Reasons
from ..models.settings import Settings
from ..utils.logging_helpers import get_logger
from .formats import system_codec_supports
from .protocols import CodecBridge, ToolResolver
from .webp_bridge import CodecAvailability


logger = get_logger()


@dataclass(frozen=True)
class ExternalTool:
    """专用外部工具"""

    tool: str
    path: Path

    @property
    def name(self) -> str:
        return self.tool


@dataclass(frozen=True)
class EmbeddedCodec:
    """内嵌 libwebp"""

    @property
    def name(self) -> str:
        return "embedded-libwebp"


@dataclass(frozen=True)
class SystemCodec:
    """Pillow 自带的编解码器"""

    @property
    def name(self) -> str:
        return "pillow"


@dataclass(frozen=True)
class Unavailable:
    """没有可用层级，reason 即跳过原因"""

    reason: str = Reasons.NOT_COMPRESSIBLE

    @property
    def name(self) -> str:
        return "unavailable"


Strategy = ExternalTool | EmbeddedCodec | SystemCodec | Unavailable


class StrategySelector:
    """压缩层级选择器

    顺序：可解析的专用外部工具 → 内嵌编解码库 → Pillow 编解码器。
    层级回退只更换编码器，不改变调用方设定的质量参数。
    """

    def __init__(self, tools: ToolResolver, bridge: CodecBridge):
        """初始化选择器

        Args:
            tools: 外部工具定位器
            bridge: 内嵌编解码桥接
        """
        self.tools = tools
        self.bridge = bridge

    def select_strategies(
        self, container: ContainerFormat, settings: Settings
    ) -> list[Strategy]:
        """生成有序的层级列表

        Args:
            container: 识别出的容器格式
            settings: 压缩设置

        Returns:
            list[Strategy]: 至少包含一个元素；无可用层级时为 [Unavailable(reason)]
        """
        if container == ContainerFormat.GIF and not settings.enable_gifsicle:
            return [Unavailable(Reasons.GIF_DISABLED)]

        if container == ContainerFormat.UNSUPPORTED:
            return [Unavailable(Reasons.NOT_COMPRESSIBLE)]

        tiers: list[Strategy] = []
        for tool in ImageFormats.EXTERNAL_TOOLS.get(container, ()):
            if (path := self.tools.locate(tool)) is not None:
                tiers.append(ExternalTool(tool, path))

        if container in ImageFormats.EMBEDDED_CODEC_FORMATS:
            match self.bridge.availability():
                case CodecAvailability.SYSTEM_CODEC:
                    tiers.append(SystemCodec())
                case CodecAvailability.EMBEDDED:
                    tiers.append(EmbeddedCodec())
        elif system_codec_supports(container):
            tiers.append(SystemCodec())

        if not tiers:
            reason = (
                Reasons.WEBP_UNAVAILABLE
                if container == ContainerFormat.WEBP
                else Reasons.NOT_COMPRESSIBLE
            )
            tiers.append(Unavailable(reason))

        logger.debug(f"{container.value} 压缩层级: {[t.name for t in tiers]}")
        return tiers
