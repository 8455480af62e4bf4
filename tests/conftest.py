"""测试配置文件。

提供测试所需的fixtures和辅助函数。
"""

import os
import tempfile
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

from pics_minifier.config import reset_config
from pics_minifier.core.compression_engine import CompressionEngine
from pics_minifier.models.settings import CompressionRequest, Settings
from pics_minifier.testing.fakes import FakeCodecBridge, FakeProcessRunner, FakeToolLocator


def _draw_pattern(img: Image.Image) -> None:
    """绘制足够复杂的图案，保证文件体积明显大于下限"""
    draw = ImageDraw.Draw(img)
    width, height = img.size
    for i in range(60):
        x, y = (i * 17) % width, (i * 13) % height
        color = (i * 5 % 256, i * 7 % 256, i * 11 % 256)
        draw.rectangle([x, y, x + 40, y + 30], fill=color)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """清除 PICS_* 环境变量并重建全局配置"""
    for key in list(os.environ):
        if key.startswith("PICS_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_dir():
    """临时目录fixture"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def make_image(temp_dir: Path):
    """按格式生成测试图片的工厂"""

    def _make(
        name: str = "sample.png",
        fmt: str = "PNG",
        size: tuple[int, int] = (320, 240),
        mode: str = "RGB",
        **save_kwargs,
    ) -> Path:
        path = temp_dir / name
        img = Image.new(mode, size, color="white" if mode == "RGB" else None)
        if mode == "RGB":
            _draw_pattern(img)
        img.save(path, fmt, **save_kwargs)
        return path

    return _make


@pytest.fixture
def png_image(make_image) -> Path:
    return make_image("photo.png", "PNG")


@pytest.fixture
def jpeg_image(make_image) -> Path:
    return make_image("photo.jpg", "JPEG", quality=95)


@pytest.fixture
def gif_image(make_image) -> Path:
    return make_image("anim.gif", "GIF")


@pytest.fixture
def fake_runner() -> FakeProcessRunner:
    return FakeProcessRunner()


@pytest.fixture
def fake_bridge() -> FakeCodecBridge:
    return FakeCodecBridge()


def make_engine(
    tools: dict[str, Path] | None = None,
    runner: FakeProcessRunner | None = None,
    bridge: FakeCodecBridge | None = None,
) -> CompressionEngine:
    """组装使用替身的压缩引擎"""
    return CompressionEngine(
        runner=runner or FakeProcessRunner(),
        tools=FakeToolLocator(tools or {}),
        bridge=bridge or FakeCodecBridge(),
    )


def make_request(path: Path, **settings_kwargs) -> CompressionRequest:
    """创建压缩请求"""
    return CompressionRequest(source_path=path, settings=Settings(**settings_kwargs))


def write_script(directory: Path, name: str, body: str) -> Path:
    """写入一个可执行的 /bin/sh 脚本"""
    path = directory / name
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(0o755)
    return path
