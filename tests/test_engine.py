"""压缩引擎测试。

外部工具与 libwebp 全部使用替身，只有 Pillow 层级真实执行。
"""

import base64
from pathlib import Path

import pytest
from PIL import Image

from pics_minifier.config import reset_config
from pics_minifier.core.cancellation import CancellationToken
from pics_minifier.core.webp_bridge import CodecAvailability
from pics_minifier.exceptions import ProcessTimeoutError
from pics_minifier.models.constants import Reasons
from pics_minifier.models.outcome import OutcomeStatus
from pics_minifier.models.settings import ResizeSpec
from pics_minifier.testing.fakes import FakeCodecBridge, FakeProcessRunner
from tests.conftest import make_engine, make_request


TOOLS = {tool: Path(f"/opt/tools/{tool}") for tool in ("cjpegli", "cjpeg", "oxipng", "cwebp")}

# 1x1 GIF87a
PIXEL_GIF = "R0lGODdhAQABAPAAAP///wAAACH5BAAAAAAALAAAAAABAAEAAAICRAEAOw=="


def write_webp_payload(directory: Path, name: str = "photo.webp", size: int = 2000) -> Path:
    """写入按扩展名识别的 WebP 数据，内容交给替身解码"""
    path = directory / name
    path.write_bytes(b"RIFF" + b"\x07" * (size - 4))
    return path


class TestEngineSkips:
    """跳过与输入校验测试"""

    def test_gif_disabled(self, gif_image: Path):
        """测试关闭 GIF 处理时直接跳过且不产生输出"""
        runner = FakeProcessRunner()
        engine = make_engine({"gifsicle": Path("/opt/tools/gifsicle")}, runner)
        original = gif_image.read_bytes()

        outcome = engine.process(make_request(gif_image, enable_gifsicle=False))

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == Reasons.GIF_DISABLED
        assert outcome.source_format == "gif"
        assert outcome.output_path == gif_image
        assert outcome.new_size_bytes == outcome.original_size_bytes == len(original)
        assert runner.call_count == 0
        assert gif_image.read_bytes() == original
        assert sorted(p.name for p in gif_image.parent.iterdir()) == ["anim.gif"]

    def test_tiny_gif_disabled(self, temp_dir: Path):
        """测试低于体积下限的 GIF 在关闭 GIF 处理时仍报告 gifsicle-disabled"""
        path = temp_dir / "pixel.gif"
        path.write_bytes(base64.b64decode(PIXEL_GIF))
        runner = FakeProcessRunner()

        outcome = make_engine({"gifsicle": Path("/opt/tools/gifsicle")}, runner).process(
            make_request(path, enable_gifsicle=False)
        )

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == Reasons.GIF_DISABLED
        assert outcome.original_size_bytes == path.stat().st_size < 100
        assert runner.call_count == 0

    def test_tiny_gif_enabled_too_small(self, temp_dir: Path):
        path = temp_dir / "pixel.gif"
        path.write_bytes(base64.b64decode(PIXEL_GIF))

        outcome = make_engine({"gifsicle": Path("/opt/tools/gifsicle")}).process(
            make_request(path)
        )

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == Reasons.FILE_TOO_SMALL
        assert outcome.source_format == "gif"

    def test_outside_allowed_roots(self):
        outcome = make_engine().process(make_request(Path("/etc/hosts")))
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.reason == Reasons.INVALID_INPUT_PATH
        assert outcome.original_size_bytes == 0

    def test_missing_file(self, temp_dir: Path):
        outcome = make_engine().process(make_request(temp_dir / "missing.png"))
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.reason == Reasons.FILE_NOT_FOUND
        assert outcome.original_size_bytes == 0

    def test_file_too_small(self, temp_dir: Path):
        tiny = temp_dir / "tiny.png"
        tiny.write_bytes(b"\x89PNG" + b"\x00" * 10)
        outcome = make_engine().process(make_request(tiny))
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == Reasons.FILE_TOO_SMALL
        assert outcome.original_size_bytes == 14

    def test_file_too_large(self, png_image: Path, monkeypatch):
        monkeypatch.setenv("PICS_MAX_FILE_SIZE_MB", "0.0001")
        reset_config()
        outcome = make_engine().process(make_request(png_image))
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.reason == Reasons.FILE_TOO_LARGE

    def test_unknown_content(self, temp_dir: Path):
        path = temp_dir / "data.bin"
        path.write_bytes(b"plain bytes " * 50)
        outcome = make_engine().process(make_request(path))
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == Reasons.UNKNOWN_CONTENT_TYPE

    def test_unsupported_format(self, make_image):
        bitmap = make_image("bitmap.bmp", "BMP")
        outcome = make_engine(TOOLS).process(make_request(bitmap))
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == Reasons.NOT_COMPRESSIBLE
        assert outcome.source_format == "bmp"

    def test_webp_without_encoder(self, temp_dir: Path):
        path = write_webp_payload(temp_dir)
        engine = make_engine(bridge=FakeCodecBridge(availability=CodecAvailability.UNAVAILABLE))
        outcome = engine.process(make_request(path))
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == Reasons.WEBP_UNAVAILABLE


class TestEngineCompression:
    """压缩流程测试"""

    def test_jpeg_with_external_tool(self, jpeg_image: Path):
        """测试 JPEG 使用首个可用工具并写入 _compressed 文件"""
        runner = FakeProcessRunner(output_ratio=0.5)
        engine = make_engine({"cjpeg": TOOLS["cjpeg"]}, runner)
        original = jpeg_image.read_bytes()

        outcome = engine.process(make_request(jpeg_image))

        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.reason == Reasons.MOZJPEG
        assert outcome.source_format == outcome.target_format == "jpeg"
        assert outcome.output_path == jpeg_image.parent / "photo_compressed.jpg"
        assert outcome.new_size_bytes == len(original) // 2
        assert outcome.output_path.stat().st_size == outcome.new_size_bytes
        assert jpeg_image.read_bytes() == original
        assert runner.calls[0][0] == TOOLS["cjpeg"]

    def test_cjpegli_preferred(self, jpeg_image: Path):
        runner = FakeProcessRunner()
        outcome = make_engine(TOOLS, runner).process(make_request(jpeg_image))
        assert outcome.reason == Reasons.JPEGLI
        assert runner.call_count == 1

    def test_png_no_gain(self, png_image: Path):
        """测试工具输出没有变小时保留原始字节"""
        runner = FakeProcessRunner(output_ratio=1.0)
        original = png_image.read_bytes()

        outcome = make_engine({"oxipng": TOOLS["oxipng"]}, runner).process(
            make_request(png_image)
        )

        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.reason == Reasons.NO_GAIN
        assert outcome.new_size_bytes == outcome.original_size_bytes
        assert outcome.output_path.read_bytes() == original

    def test_webp_overwrite_with_embedded_codec(self, temp_dir: Path):
        """测试没有 cwebp 时使用内嵌编解码并原地替换"""
        path = write_webp_payload(temp_dir, size=2000)
        bridge = FakeCodecBridge(output_ratio=0.25)

        outcome = make_engine(bridge=bridge).process(make_request(path, saveMode="overwrite"))

        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.reason == Reasons.EMBEDDED_WEBP
        assert outcome.output_path == path
        assert outcome.new_size_bytes == 500
        assert path.stat().st_size == 500
        assert sorted(p.name for p in temp_dir.iterdir()) == ["photo.webp"]

    def test_separate_folder(self, png_image: Path):
        outcome = make_engine({"oxipng": TOOLS["oxipng"]}).process(
            make_request(png_image, saveMode="separateFolder")
        )
        assert outcome.output_path == png_image.parent / "Compressor" / "photo.png"
        assert outcome.output_path.exists()

    def test_falls_back_after_tool_failures(self, jpeg_image: Path):
        """测试外部工具全部失败后回退到 Pillow"""
        runner = FakeProcessRunner()
        runner.set_failure_mode()

        outcome = make_engine(TOOLS, runner).process(make_request(jpeg_image))

        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.reason in (Reasons.SYSTEM_CODEC, Reasons.NO_GAIN)
        assert runner.call_count == 2
        with Image.open(outcome.output_path) as img:
            assert img.format == "JPEG"

    def test_falls_back_after_timeout(self, png_image: Path):
        runner = FakeProcessRunner(error=ProcessTimeoutError("超时"))
        outcome = make_engine({"oxipng": TOOLS["oxipng"]}, runner).process(
            make_request(png_image)
        )
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.reason in (Reasons.SYSTEM_CODEC, Reasons.NO_GAIN)

    def test_empty_tool_output_falls_back(self, png_image: Path):
        runner = FakeProcessRunner(output_bytes=b"")
        outcome = make_engine({"oxipng": TOOLS["oxipng"]}, runner).process(
            make_request(png_image)
        )
        assert outcome.reason in (Reasons.SYSTEM_CODEC, Reasons.NO_GAIN)

    def test_all_tiers_failed(self, temp_dir: Path):
        """测试所有层级失败时返回错误且原文件不变"""
        path = write_webp_payload(temp_dir)
        original = path.read_bytes()
        runner = FakeProcessRunner()
        runner.set_failure_mode()
        engine = make_engine(
            {"cwebp": TOOLS["cwebp"]}, runner, FakeCodecBridge(fail_encode=True)
        )

        outcome = engine.process(make_request(path))

        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.reason == Reasons.ALL_TIERS_FAILED
        assert outcome.source_format == "webp"
        assert outcome.original_size_bytes == len(original)
        assert path.read_bytes() == original
        assert sorted(p.name for p in temp_dir.iterdir()) == ["photo.webp"]

    def test_cancelled_before_start(self, png_image: Path):
        runner = FakeProcessRunner()
        token = CancellationToken()
        token.cancel()

        outcome = make_engine({"oxipng": TOOLS["oxipng"]}, runner).process(
            make_request(png_image), token
        )

        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == Reasons.CANCELLED
        assert runner.call_count == 0

    @pytest.mark.parametrize("save_mode", ["suffix", "overwrite"])
    def test_cancelled_before_commit(self, png_image: Path, save_mode: str):
        """测试工具完成后、提交前取消：不提交结果，目录中只剩原文件"""
        token = CancellationToken()
        runner = FakeProcessRunner(on_run=lambda executable, args: token.cancel())
        original = png_image.read_bytes()

        outcome = make_engine({"oxipng": TOOLS["oxipng"]}, runner).process(
            make_request(png_image, save_mode=save_mode), token
        )

        assert runner.call_count == 1
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == Reasons.CANCELLED
        assert png_image.read_bytes() == original
        assert sorted(p.name for p in png_image.parent.iterdir()) == ["photo.png"]

    def test_resize_before_compression(self, png_image: Path):
        """测试缩放结果作为工具输入，原始文件不变"""
        runner = FakeProcessRunner(output_ratio=0.5)
        original = png_image.read_bytes()

        outcome = make_engine({"oxipng": TOOLS["oxipng"]}, runner).process(
            make_request(png_image, resize=ResizeSpec(enabled=True, target_pixels=100))
        )

        tool_input = runner.calls[0][1][-1]
        assert tool_input != str(png_image)
        assert not Path(tool_input).exists()
        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.original_size_bytes == len(original)
        assert png_image.read_bytes() == original

    def test_request_id_carried(self, png_image: Path):
        request = make_request(png_image)
        outcome = make_engine({"oxipng": TOOLS["oxipng"]}).process(request)
        assert outcome.request_id == request.request_id
