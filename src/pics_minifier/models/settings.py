"""压缩设置与请求模型。

定义单个压缩请求携带的不可变参数。
"""

import uuid
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..config import get_config
from ..utils.message_formatter import format_validation_error


class Preset(str, Enum):
    """压缩预设"""

    QUALITY = "quality"
    BALANCED = "balanced"
    SAVING = "saving"
    CUSTOM = "custom"


class SaveMode(str, Enum):
    """输出保存方式"""

    SUFFIX = "suffix"  # 同目录，文件名加 _compressed
    SEPARATE_FOLDER = "separateFolder"  # 同目录下的 Compressor/ 子目录
    OVERWRITE = "overwrite"  # 原地覆盖


class ResizeCondition(str, Enum):
    """缩放基准"""

    WIDTH = "width"
    HEIGHT = "height"
    FIT = "fit"  # 最长边


class ResizeSpec(BaseModel):
    """尺寸调整配置"""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(False, description="是否启用缩放")
    target_pixels: int = Field(0, ge=0, description="目标像素数")
    condition: ResizeCondition = Field(ResizeCondition.FIT, description="缩放基准")

    @model_validator(mode="after")
    def validate_target(self) -> "ResizeSpec":
        if self.enabled and self.target_pixels <= 0:
            raise ValueError(
                format_validation_error("target_pixels", self.target_pixels, "> 0")
            )
        return self

    @property
    def active(self) -> bool:
        """是否真正需要缩放"""
        return self.enabled and self.target_pixels > 0


class Settings(BaseModel):
    """单个请求的压缩设置"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    preset: Preset = Field(Preset.BALANCED, description="压缩预设")
    save_mode: SaveMode = Field(SaveMode.SUFFIX, alias="saveMode", description="保存方式")
    preserve_metadata: bool = Field(True, description="保留元数据")
    convert_to_srgb: bool = Field(False, description="转换到 sRGB 色彩空间")
    enable_gifsicle: bool = Field(True, description="启用 GIF 优化")
    enable_gif_lossy: bool = Field(False, description="GIF 有损优化")
    resize: ResizeSpec = Field(default_factory=ResizeSpec, description="尺寸调整")

    # custom 预设使用的参数
    custom_jpeg_quality: float = Field(
        default_factory=lambda: get_config().compression.CUSTOM_JPEG_QUALITY,
        ge=0.0,
        le=1.0,
    )
    custom_png_level: int = Field(
        default_factory=lambda: get_config().compression.CUSTOM_PNG_LEVEL, ge=0, le=6
    )
    custom_webp_quality: int = Field(
        default_factory=lambda: get_config().compression.CUSTOM_WEBP_QUALITY, ge=0, le=100
    )
    custom_webp_method: int = Field(
        default_factory=lambda: get_config().compression.CUSTOM_WEBP_METHOD, ge=0, le=6
    )
    custom_avif_quality: int = Field(
        default_factory=lambda: get_config().compression.CUSTOM_AVIF_QUALITY, ge=0, le=63
    )
    custom_avif_speed: int = Field(
        default_factory=lambda: get_config().compression.CUSTOM_AVIF_SPEED, ge=0, le=10
    )

    @field_validator("preset", mode="before")
    @classmethod
    def normalize_preset(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    def _preset_value(self, index: int) -> float | int:
        return get_config().compression.get_preset_values(self.preset.value)[index]

    @property
    def jpeg_quality(self) -> float:
        """JPEG 质量（0-1）"""
        if self.preset == Preset.CUSTOM:
            return self.custom_jpeg_quality
        return float(self._preset_value(0))

    @property
    def jpeg_quality_int(self) -> int:
        """传给编码器的整数 JPEG 质量"""
        return max(1, min(100, round(self.jpeg_quality * 100)))

    @property
    def webp_quality(self) -> int:
        if self.preset == Preset.CUSTOM:
            return self.custom_webp_quality
        return int(self._preset_value(1))

    @property
    def webp_method(self) -> int:
        if self.preset == Preset.CUSTOM:
            return self.custom_webp_method
        return int(self._preset_value(2))

    @property
    def png_level(self) -> int:
        """PNG / GIF 优化级别"""
        if self.preset == Preset.CUSTOM:
            return self.custom_png_level
        return int(self._preset_value(3))

    @property
    def avif_quality(self) -> int:
        if self.preset == Preset.CUSTOM:
            return self.custom_avif_quality
        return int(self._preset_value(4))

    @property
    def avif_speed(self) -> int:
        if self.preset == Preset.CUSTOM:
            return self.custom_avif_speed
        return int(self._preset_value(5))

    @property
    def needs_preprocessing(self) -> bool:
        return self.resize.active or self.convert_to_srgb


class CompressionRequest(BaseModel):
    """单个文件的压缩请求，创建后不可修改"""

    model_config = ConfigDict(frozen=True)

    source_path: Path = Field(description="源文件路径")
    settings: Settings = Field(default_factory=Settings, description="压缩设置")
    request_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex, description="请求标识"
    )

    @field_validator("source_path", mode="before")
    @classmethod
    def coerce_path(cls, v: object) -> object:
        if isinstance(v, str):
            return Path(v)
        return v

    @property
    def display_name(self) -> str:
        return self.source_path.name
