"""压缩结果模型。

Outcome 是每个请求唯一且不可变的结果记录；BatchSummary 汇总一批结果。
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from humanize import naturalsize
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import Reasons


class OutcomeStatus(str, Enum):
    """结果状态"""

    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


class BaseResult(BaseModel):
    """结果基类"""

    model_config = ConfigDict(frozen=True)

    @staticmethod
    def format_size(size_bytes: int) -> str:
        """格式化文件大小为人类可读格式"""
        return naturalsize(size_bytes, binary=True)


class Outcome(BaseResult):
    """单个请求的压缩结果"""

    source_format: str = Field(description="源格式")
    target_format: str = Field(description="目标格式")
    original_path: Path = Field(description="原始文件路径")
    output_path: Path = Field(description="输出文件路径")
    original_size_bytes: int = Field(ge=0, description="原始大小（字节）")
    new_size_bytes: int = Field(ge=0, description="输出大小（字节）")
    status: OutcomeStatus = Field(description="结果状态")
    reason: str = Field(description="原因码")
    request_id: str | None = Field(None, description="对应的请求标识")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), description="生成时间"
    )

    @model_validator(mode="after")
    def validate_no_regression(self) -> "Outcome":
        if self.status == OutcomeStatus.SUCCESS:
            if self.new_size_bytes > self.original_size_bytes:
                raise ValueError("成功结果的输出大小不能超过原始大小")
            if self.reason == Reasons.NO_GAIN and self.new_size_bytes != self.original_size_bytes:
                raise ValueError("no-gain 结果的大小必须与原始大小一致")
        return self

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    def get_bytes_saved(self) -> int:
        """节省的字节数（仅成功结果）"""
        if not self.success:
            return 0
        return max(0, self.original_size_bytes - self.new_size_bytes)

    def get_saved_ratio(self) -> float:
        """节省比例（0-1）"""
        if self.original_size_bytes == 0:
            return 0.0
        return self.get_bytes_saved() / self.original_size_bytes

    def get_summary(self) -> str:
        """结果摘要"""
        match self.status:
            case OutcomeStatus.SUCCESS:
                return (
                    f"{self.format_size(self.original_size_bytes)} → "
                    f"{self.format_size(self.new_size_bytes)} "
                    f"({self.get_saved_ratio() * 100:.1f}% 节省, {self.reason})"
                )
            case OutcomeStatus.SKIPPED:
                return f"跳过: {self.reason}"
            case _:
                return f"失败: {self.reason}"

    def to_log_row(self) -> dict[str, str]:
        """按持久化日志字段顺序导出"""
        return {
            "timestamp": self.timestamp.isoformat(),
            "sourceFormat": self.source_format,
            "targetFormat": self.target_format,
            "originalPath": str(self.original_path),
            "outputPath": str(self.output_path),
            "originalSizeBytes": str(self.original_size_bytes),
            "newSizeBytes": str(self.new_size_bytes),
            "bytesSaved": str(self.get_bytes_saved()),
            "savedRatio": f"{self.get_saved_ratio():.4f}",
            "status": self.status.value,
            "reason": self.reason,
        }


class BatchProgress(BaseResult):
    """批处理进度，仅用于界面反馈"""

    processed: int = Field(ge=0, description="已完成数量")
    total: int = Field(ge=0, description="总数量")
    current_file: str | None = Field(None, description="当前文件名")
    final: bool = Field(False, description="是否为整批的最终进度")

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return self.processed / self.total


class BatchSummary(BaseResult):
    """一批请求的汇总"""

    total: int = Field(0, ge=0)
    success: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    original_bytes: int = Field(0, ge=0)
    new_bytes: int = Field(0, ge=0)
    bytes_saved: int = Field(0, ge=0)
    cancelled: bool = Field(False)

    @classmethod
    def from_outcomes(cls, outcomes: list[Outcome], cancelled: bool = False) -> "BatchSummary":
        """从结果列表汇总"""
        successful = [o for o in outcomes if o.status == OutcomeStatus.SUCCESS]
        return cls(
            total=len(outcomes),
            success=len(successful),
            skipped=sum(1 for o in outcomes if o.status == OutcomeStatus.SKIPPED),
            failed=sum(1 for o in outcomes if o.status == OutcomeStatus.ERROR),
            original_bytes=sum(o.original_size_bytes for o in successful),
            new_bytes=sum(o.new_size_bytes for o in successful),
            bytes_saved=sum(o.get_bytes_saved() for o in successful),
            cancelled=cancelled,
        )

    def get_saved_ratio(self) -> float:
        if self.original_bytes == 0:
            return 0.0
        return self.bytes_saved / self.original_bytes

    def get_summary(self) -> str:
        """批量处理摘要"""
        return (
            f"成功 {self.success}/{self.total}，跳过 {self.skipped}，失败 {self.failed}，"
            f"共节省 {self.format_size(self.bytes_saved)} "
            f"({self.get_saved_ratio() * 100:.1f}%)"
        )


class SessionStats(BaseResult):
    """统计存储的快照"""

    total_files: int = 0
    processed_files: int = 0
    successful_files: int = 0
    failed_files: int = 0
    skipped_files: int = 0
    total_original_size: int = 0
    total_compressed_size: int = 0
    total_saved_bytes: int = 0

    @property
    def compression_ratio(self) -> float:
        """压缩后 / 压缩前"""
        if self.total_original_size == 0:
            return 0.0
        return self.total_compressed_size / self.total_original_size

    def get_saved_human(self) -> str:
        return self.format_size(self.total_saved_bytes)
