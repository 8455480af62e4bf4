"""libwebp 桥接测试。

真实库的用例在 libwebp 不存在时跳过。
"""

import io

import numpy as np
import pytest
from PIL import Image, features

from pics_minifier.core.webp_bridge import (
    LIBWEBP_ENV,
    CodecAvailability,
    DecodedImage,
    WebPCodecBridge,
    load_libwebp,
)


libwebp = load_libwebp()
requires_libwebp = pytest.mark.skipif(libwebp is None, reason="未找到 libwebp")


class TestDecodedImage:
    """像素容器测试"""

    def test_to_array_strips_padding(self):
        """测试 stride 大于 width*4 时去掉行尾填充"""
        row = bytes([1, 2, 3, 4, 5, 6, 7, 8]) + b"\xee" * 4
        decoded = DecodedImage(pixels=row * 3, width=2, height=3, stride=12)

        array = decoded.to_array()

        assert array.shape == (3, 2, 4)
        assert array[2, 1].tolist() == [5, 6, 7, 8]
        assert 0xEE not in array

    def test_to_array_tight(self):
        decoded = DecodedImage(pixels=bytes(range(16)), width=2, height=2, stride=8)
        assert decoded.to_array()[1, 0].tolist() == [8, 9, 10, 11]


class TestLibraryLoading:
    """库加载测试"""

    def test_invalid_override_returns_none(self, monkeypatch):
        """测试覆盖路径无效时不再回退到其他位置"""
        monkeypatch.setenv(LIBWEBP_ENV, "/nonexistent/libwebp.so")
        assert load_libwebp() is None

    def test_unavailable_without_library(self, monkeypatch):
        monkeypatch.setenv(LIBWEBP_ENV, "/nonexistent/libwebp.so")
        bridge = WebPCodecBridge(prefer_system=False)

        assert bridge.availability() == CodecAvailability.UNAVAILABLE
        assert bridge.encode(bytes(4), 1, 1, 80.0) is None
        assert bridge.decode(b"RIFF") is None

    @pytest.mark.skipif(not features.check("webp"), reason="Pillow 未编译 WebP 支持")
    def test_system_codec_preferred(self, monkeypatch):
        monkeypatch.setenv(LIBWEBP_ENV, "/nonexistent/libwebp.so")
        assert WebPCodecBridge().availability() == CodecAvailability.SYSTEM_CODEC


@requires_libwebp
class TestEmbeddedLibwebp:
    """真实 libwebp 测试"""

    def test_round_trip_dimensions(self):
        bridge = WebPCodecBridge(lib=libwebp)
        pixels = np.random.default_rng(7).integers(0, 256, (24, 32, 4), dtype=np.uint8)

        encoded = bridge.encode(pixels, 32, 24, 80.0)
        assert encoded is not None and encoded[:4] == b"RIFF"

        decoded = bridge.decode(encoded)
        assert decoded is not None
        assert (decoded.width, decoded.height) == (32, 24)
        assert decoded.to_array().shape == (24, 32, 4)

    def test_self_check(self):
        bridge = WebPCodecBridge(lib=libwebp, prefer_system=False)
        assert bridge.embedded_functional()
        assert bridge.availability() == CodecAvailability.EMBEDDED

    def test_length_mismatch(self):
        assert WebPCodecBridge(lib=libwebp).encode(bytes(10), 2, 2, 80.0) is None

    def test_garbage_input(self):
        assert WebPCodecBridge(lib=libwebp).decode(b"not a webp file at all") is None

    @pytest.mark.skipif(not features.check("webp"), reason="Pillow 未编译 WebP 支持")
    def test_decodes_pillow_output(self):
        buffer = io.BytesIO()
        Image.new("RGBA", (10, 6), (10, 20, 30, 255)).save(buffer, "WEBP", lossless=True)

        decoded = WebPCodecBridge(lib=libwebp).decode(buffer.getvalue())

        assert decoded is not None
        assert decoded.to_array()[0, 0].tolist() == [10, 20, 30, 255]
