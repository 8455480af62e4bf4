"""编码层级与预处理测试。"""

from pathlib import Path

import pytest
from PIL import Image

from pics_minifier.core.encoders import (
    build_tool_arguments,
    encode_with_embedded_codec,
    encode_with_system_codec,
)
from pics_minifier.core.formats import detect_format, get_save_parameters
from pics_minifier.core.preprocess import compute_target_size, prepare_working_file
from pics_minifier.exceptions import ProcessingError
from pics_minifier.models.constants import ContainerFormat
from pics_minifier.models.settings import ResizeCondition, ResizeSpec, Settings
from pics_minifier.testing.fakes import FakeCodecBridge
from pics_minifier.utils.cleanup_helpers import TempFileManager


SRC = Path("/tmp/in.img")
DST = Path("/tmp/out.img")


class TestToolArguments:
    """外部工具参数测试"""

    def test_cjpegli(self):
        args = build_tool_arguments("cjpegli", SRC, DST, Settings(preset="balanced"))
        assert args == ["--quality", "88", str(SRC), str(DST)]

    def test_cjpeg(self):
        args = build_tool_arguments("cjpeg", SRC, DST, Settings(preset="saving"))
        assert args == [
            "-quality", "82", "-optimize", "-progressive", "-dc-scan-opt", "2",
            "-outfile", str(DST), str(SRC),
        ]

    def test_oxipng_strip(self):
        keep = build_tool_arguments("oxipng", SRC, DST, Settings())
        strip = build_tool_arguments("oxipng", SRC, DST, Settings(preserve_metadata=False))
        assert keep[:4] == ["--opt", "3", "--strip", "none"]
        assert strip[3] == "safe"
        assert keep[-3:] == ["--out", str(DST), str(SRC)]

    def test_cwebp_quality_preset_uses_pass(self):
        args = build_tool_arguments("cwebp", SRC, DST, Settings(preset="quality"))
        assert args[:4] == ["-q", "95", "-m", "6"]
        assert "-pass" in args
        assert args[-3:] == ["-o", str(DST), str(SRC)]

    def test_cwebp_balanced_without_pass(self):
        args = build_tool_arguments("cwebp", SRC, DST, Settings())
        assert "-pass" not in args

    @pytest.mark.parametrize(("level", "expected"), [(0, 1), (2, 2), (6, 3)])
    def test_gifsicle_level_clamped(self, level: int, expected: int):
        settings = Settings(preset="custom", custom_png_level=level)
        args = build_tool_arguments("gifsicle", SRC, DST, settings)
        assert args[0] == f"--optimize={expected}"

    def test_gifsicle_lossy(self):
        args = build_tool_arguments("gifsicle", SRC, DST, Settings(enable_gif_lossy=True))
        assert "--lossy=80" in args
        assert "--lossy=80" not in build_tool_arguments("gifsicle", SRC, DST, Settings())

    def test_avifenc(self):
        args = build_tool_arguments("avifenc", SRC, DST, Settings())
        assert "cq-level=25" in args
        assert args[-4:] == ["-s", "4", str(SRC), str(DST)]

    @pytest.mark.parametrize(("quality", "expected"), [(0.29, "29"), (0.829, "83"), (0.57, "57")])
    def test_custom_jpeg_quality_rounded(self, quality: float, expected: str):
        """测试自定义质量取最接近的整数，不因浮点误差降低"""
        settings = Settings(preset="custom", custom_jpeg_quality=quality)
        assert build_tool_arguments("cjpegli", SRC, DST, settings)[1] == expected

    def test_unknown_tool(self):
        with pytest.raises(ValueError):
            build_tool_arguments("convert", SRC, DST, Settings())


class TestFormats:
    """格式识别测试"""

    def test_detect_by_content(self, make_image):
        """测试按内容而非扩展名识别"""
        path = make_image("misnamed.gif", "PNG")
        assert detect_format(path) == (ContainerFormat.PNG, "png")

    def test_unknown_content(self, temp_dir: Path):
        path = temp_dir / "notes.txt"
        path.write_text("not an image" * 20)
        assert detect_format(path) == (ContainerFormat.UNSUPPORTED, None)

    def test_unsupported_container(self, make_image):
        path = make_image("bitmap.bmp", "BMP")
        assert detect_format(path) == (ContainerFormat.UNSUPPORTED, "bmp")

    def test_jpeg_save_parameters(self, jpeg_image: Path):
        with Image.open(jpeg_image) as img:
            params = get_save_parameters(ContainerFormat.JPEG, img, Settings(preset="quality"))
        assert params["format"] == "JPEG"
        assert params["quality"] == 95
        assert params["optimize"] is True


class TestSystemCodec:
    """Pillow 层级测试"""

    def test_reencode_png(self, png_image: Path, temp_dir: Path):
        output = temp_dir / "out.png"
        encode_with_system_codec(ContainerFormat.PNG, png_image, output, Settings())
        with Image.open(output) as img:
            assert img.format == "PNG"
            assert img.size == (320, 240)

    def test_broken_input(self, temp_dir: Path):
        broken = temp_dir / "broken.jpg"
        broken.write_bytes(b"\xff\xd8\xff" + b"\x00" * 200)
        with pytest.raises(ProcessingError):
            encode_with_system_codec(ContainerFormat.JPEG, broken, temp_dir / "o.jpg", Settings())


class TestEmbeddedCodec:
    """内嵌编解码层级测试"""

    def test_writes_encoded_bytes(self, temp_dir: Path):
        source = temp_dir / "in.webp"
        source.write_bytes(b"RIFF" + b"\x01" * 996)
        output = temp_dir / "out.webp"
        bridge = FakeCodecBridge(output_ratio=0.25)

        encode_with_embedded_codec(bridge, source, output, Settings())

        assert output.stat().st_size == 250
        assert bridge.encode_calls == [(1, 1, 88.0)]

    def test_decode_failure(self, temp_dir: Path):
        source = temp_dir / "in.webp"
        source.write_bytes(b"RIFF" + b"\x01" * 200)
        with pytest.raises(ProcessingError):
            encode_with_embedded_codec(
                FakeCodecBridge(fail_decode=True), source, temp_dir / "o.webp", Settings()
            )

    def test_encode_failure(self, temp_dir: Path):
        source = temp_dir / "in.webp"
        source.write_bytes(b"RIFF" + b"\x01" * 200)
        with pytest.raises(ProcessingError):
            encode_with_embedded_codec(
                FakeCodecBridge(fail_encode=True), source, temp_dir / "o.webp", Settings()
            )


class TestPreprocess:
    """预处理测试"""

    @pytest.mark.parametrize(
        ("condition", "target", "expected"),
        [
            (ResizeCondition.FIT, 160, (160, 120)),
            (ResizeCondition.WIDTH, 100, (100, 75)),
            (ResizeCondition.HEIGHT, 60, (80, 60)),
            (ResizeCondition.FIT, 1000, (320, 240)),
        ],
    )
    def test_compute_target_size(self, condition, target, expected):
        resize = ResizeSpec(enabled=True, target_pixels=target, condition=condition)
        assert compute_target_size((320, 240), resize) == expected

    def test_disabled_resize(self):
        assert compute_target_size((320, 240), ResizeSpec()) == (320, 240)

    def test_no_preprocessing_needed(self, png_image: Path):
        with TempFileManager() as temps:
            assert prepare_working_file(png_image, ContainerFormat.PNG, Settings(), temps) is None

    def test_resize_produces_temp_file(self, png_image: Path):
        """测试缩放结果写入临时文件，原始文件不变"""
        original = png_image.read_bytes()
        settings = Settings(resize=ResizeSpec(enabled=True, target_pixels=100))

        with TempFileManager() as temps:
            working = prepare_working_file(png_image, ContainerFormat.PNG, settings, temps)
            assert working is not None
            with Image.open(working) as img:
                assert max(img.size) == 100

        assert not working.exists()
        assert png_image.read_bytes() == original

    def test_srgb_without_profile_is_noop(self, png_image: Path):
        with TempFileManager() as temps:
            result = prepare_working_file(
                png_image, ContainerFormat.PNG, Settings(convert_to_srgb=True), temps
            )
        assert result is None
