"""内嵌 WebP 编解码桥接模块。

通过 ctypes 调用 libwebp 的 WebPEncodeRGBA / WebPDecodeRGBA，
并按 系统编解码器 → 内嵌库 → 不可用 的顺序报告可用性。
libwebp 返回的缓冲区在复制后立即由 WebPFree 释放，任何退出路径都不例外。
"""

import ctypes
import ctypes.util
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import numpy as np
from PIL import features

from ..config import get_config
from ..utils.logging_helpers import get_logger


logger = get_logger()

LIBWEBP_ENV = "PICS_LIBWEBP_PATH"

_uint8_p = ctypes.POINTER(ctypes.c_uint8)


class CodecAvailability(str, Enum):
    """WebP 编解码层级"""

    SYSTEM_CODEC = "system"
    EMBEDDED = "embedded"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class DecodedImage:
    """调用方持有的 RGBA 像素"""

    pixels: bytes
    width: int
    height: int
    stride: int

    def to_array(self) -> np.ndarray:
        """转换为 (height, width, 4) 的 uint8 数组"""
        rows = np.frombuffer(self.pixels, dtype=np.uint8).reshape(self.height, self.stride)
        return rows[:, : self.width * 4].reshape(self.height, self.width, 4)


class _NativeBuffer:
    """libwebp 分配的缓冲区指针"""

    def __init__(self) -> None:
        self.ptr = _uint8_p()


def _candidate_library_paths() -> list[str]:
    candidates = list(get_config().tools.LIBWEBP_PATHS)
    if found := ctypes.util.find_library("webp"):
        candidates.append(found)
    return candidates


def load_libwebp() -> ctypes.CDLL | None:
    """加载 libwebp 并声明函数签名

    设置了 PICS_LIBWEBP_PATH 时只尝试该路径，失败即返回 None。
    """
    override = os.environ.get(LIBWEBP_ENV)
    candidates = [override] if override else _candidate_library_paths()

    for candidate in candidates:
        if os.sep in candidate and not Path(candidate).exists():
            continue
        try:
            lib = ctypes.CDLL(candidate)
            lib.WebPEncodeRGBA.argtypes = [
                _uint8_p,
                ctypes.c_int,
                ctypes.c_int,
                ctypes.c_int,
                ctypes.c_float,
                ctypes.POINTER(_uint8_p),
            ]
            lib.WebPEncodeRGBA.restype = ctypes.c_size_t
            lib.WebPDecodeRGBA.argtypes = [
                ctypes.c_char_p,
                ctypes.c_size_t,
                ctypes.POINTER(ctypes.c_int),
                ctypes.POINTER(ctypes.c_int),
            ]
            lib.WebPDecodeRGBA.restype = _uint8_p
            lib.WebPFree.argtypes = [ctypes.c_void_p]
            lib.WebPFree.restype = None
        except (OSError, AttributeError) as e:
            logger.debug(f"无法加载 libwebp {candidate}: {e}")
            continue
        logger.debug(f"已加载 libwebp: {candidate}")
        return lib

    return None


def system_codec_supports_webp() -> bool:
    """Pillow 是否自带 WebP 编解码支持"""
    return bool(features.check("webp"))


class WebPCodecBridge:
    """libwebp 桥接

    availability() 的结果惰性计算并缓存；encode/decode 只在内嵌库可用时工作。
    """

    def __init__(self, lib: ctypes.CDLL | None = None, prefer_system: bool = True):
        """初始化桥接

        Args:
            lib: 已加载的 libwebp，None 时按需加载
            prefer_system: 系统编解码器可用时是否优先报告 SYSTEM_CODEC
        """
        self._lib = lib
        self._lib_loaded = lib is not None
        self.prefer_system = prefer_system
        self._availability: CodecAvailability | None = None
        self._lock = threading.Lock()

    def _library(self) -> ctypes.CDLL | None:
        if not self._lib_loaded:
            with self._lock:
                if not self._lib_loaded:
                    self._lib = load_libwebp()
                    self._lib_loaded = True
        return self._lib

    def availability(self) -> CodecAvailability:
        """计算可用层级：系统编解码器 > 内嵌库（自检通过） > 不可用"""
        if self._availability is None:
            if self.prefer_system and system_codec_supports_webp():
                result = CodecAvailability.SYSTEM_CODEC
            elif self.embedded_functional():
                result = CodecAvailability.EMBEDDED
            else:
                result = CodecAvailability.UNAVAILABLE
            logger.debug(f"WebP 编解码层级: {result.value}")
            self._availability = result
        return self._availability

    def embedded_functional(self) -> bool:
        """内嵌库已加载且 1x1 编解码自检通过"""
        if self._library() is None:
            return False
        encoded = self.encode(bytes([255, 0, 0, 255]), 1, 1, 75.0)
        if not encoded:
            return False
        decoded = self.decode(encoded)
        return decoded is not None and (decoded.width, decoded.height) == (1, 1)

    @contextmanager
    def _native_buffer(self) -> Iterator[_NativeBuffer]:
        """在所有退出路径上释放 libwebp 分配的缓冲区"""
        buffer = _NativeBuffer()
        try:
            yield buffer
        finally:
            if buffer.ptr:
                self._lib.WebPFree(ctypes.cast(buffer.ptr, ctypes.c_void_p))
                buffer.ptr = _uint8_p()

    def encode(
        self, pixels: bytes | np.ndarray, width: int, height: int, quality: float
    ) -> bytes | None:
        """编码 RGBA 像素（stride = width * 4）

        Args:
            pixels: RGBA 像素数据
            width: 宽度
            height: 高度
            quality: 质量 0-100

        Returns:
            bytes | None: WebP 数据，失败时返回 None
        """
        lib = self._library()
        if lib is None or width <= 0 or height <= 0:
            return None

        if isinstance(pixels, np.ndarray):
            array = np.ascontiguousarray(pixels, dtype=np.uint8).reshape(-1)
        else:
            array = np.frombuffer(pixels, dtype=np.uint8)
        if array.size != width * height * 4:
            logger.debug(f"像素数据长度 {array.size} 与尺寸 {width}x{height} 不符")
            return None

        with self._native_buffer() as output:
            size = lib.WebPEncodeRGBA(
                array.ctypes.data_as(_uint8_p),
                width,
                height,
                width * 4,
                ctypes.c_float(max(0.0, min(100.0, float(quality)))),
                ctypes.byref(output.ptr),
            )
            if size == 0 or not output.ptr:
                return None
            return ctypes.string_at(output.ptr, size)

    def decode(self, data: bytes) -> DecodedImage | None:
        """解码 WebP 数据为 RGBA 像素

        Returns:
            DecodedImage | None: 复制到调用方内存的像素，失败时返回 None
        """
        lib = self._library()
        if lib is None or not data:
            return None

        width = ctypes.c_int(0)
        height = ctypes.c_int(0)
        with self._native_buffer() as output:
            output.ptr = lib.WebPDecodeRGBA(
                data, len(data), ctypes.byref(width), ctypes.byref(height)
            )
            if not output.ptr or width.value <= 0 or height.value <= 0:
                return None
            stride = width.value * 4
            pixels = ctypes.string_at(output.ptr, stride * height.value)

        return DecodedImage(pixels=pixels, width=width.value, height=height.value, stride=stride)
