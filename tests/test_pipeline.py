"""
End-to-end tests for lithophane generation.

Tests cover:
- Checkerboard, all-black and all-white scenarios
- Height bounds after smoothing and renormalization
- Frame, filename and metadata
- Failure results for bad buffers, bad images and resource limits
"""

import logging

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from lithophane import build as build_module
from lithophane.build import (
    build_lithophane,
    check_resource_budget,
    generate_height_field,
    generate_lithophane,
    process_image,
)
from common.config import (
    LithophaneSettings,
    LaplacianSmoothing,
    NoSmoothing,
)
from common.errors import ResourceLimitError, SettingsError
from common.io import read_stl_text
from common.mesh_ops import closure_residual, winding_agreement

try:
    from PIL import Image
    PIL_AVAILABLE = True
except ImportError:
    PIL_AVAILABLE = False


# ============== Fixtures ==============

@pytest.fixture
def small_settings():
    """4 x 4 mm at 1 sample per mm, 2mm thick, 5 layers."""
    return LithophaneSettings(
        width=4,
        height=4,
        resolution_multiplier=1,
        thickness=2.0,
        first_layer_thickness=0.4,
        number_of_layers=5,
        smoothing=NoSmoothing(),
    )


@pytest.fixture
def checkerboard():
    return np.array([[255 if (x + y) % 2 == 0 else 0 for x in range(4)] for y in range(4)])


@pytest.fixture
def random_buffer():
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, size=12 * 10, dtype=np.uint8).tobytes()


@pytest.fixture
def random_settings():
    return LithophaneSettings(
        width=6,
        height=5,
        resolution_multiplier=2,
        thickness=3.0,
        first_layer_thickness=0.6,
    )


@pytest.fixture
def gradient_image(tmp_path):
    """40x30 horizontal gradient saved as PNG."""
    if not PIL_AVAILABLE:
        pytest.skip("Pillow not available")
    row = np.linspace(0, 255, 40).astype(np.uint8)
    pixels = np.tile(row, (30, 1))
    path = tmp_path / "gradient.png"
    Image.fromarray(pixels).save(path)
    return path


def top_heights(stl_content):
    """z values of every vertex above the base."""
    z = read_stl_text(stl_content).triangles[:, :, 2].reshape(-1)
    return z[z > 0]


# ============== Scenario Tests ==============

class TestScenarios:
    """Known inputs with known outputs."""

    def test_checkerboard_two_levels(self, small_settings, checkerboard):
        result = generate_lithophane(checkerboard.astype(np.uint8).tobytes(), small_settings)

        assert result.success
        assert result.message == "STL file generated successfully"
        assert result.suggested_filename == "lithophane_4x4x2mm.stl"

        assert len(read_stl_text(result.stl_content).faces) == 18 + 2 + 4 * 6

        heights = np.unique(np.round(top_heights(result.stl_content), 6))
        np.testing.assert_allclose(heights, [0.4, 2.0])

    def test_checkerboard_bright_squares_thin(self, small_settings, checkerboard):
        build = build_lithophane(checkerboard.astype(np.uint8).tobytes(), small_settings)

        thin = np.isclose(build.heights.values, 0.4)
        np.testing.assert_array_equal(thin, checkerboard == 255)

    def test_checkerboard_on_larger_panel(self, small_settings, checkerboard, caplog):
        """
        A 16-byte checkerboard on a 10 x 10 mm panel: the 16 samples keep
        their row-major pattern and the padded rest sits at the first layer.
        """
        small_settings.width = 10
        small_settings.height = 10
        buffer = checkerboard.astype(np.uint8).tobytes()

        with caplog.at_level(logging.WARNING):
            result = generate_lithophane(buffer, small_settings)
        build = build_lithophane(buffer, small_settings)

        assert result.success
        assert result.suggested_filename == "lithophane_10x10x2mm.stl"
        assert "padding 84 samples" in caplog.text

        flat = build.heights.values.flat
        expected = np.where(checkerboard.reshape(-1) == 255, 0.4, 2.0)
        np.testing.assert_allclose(flat[:16], expected)
        np.testing.assert_allclose(flat[16:], 0.4)

        levels = np.unique(np.round(top_heights(result.stl_content), 6))
        np.testing.assert_allclose(levels, [0.4, 2.0])

    def test_result_carries_built_document(self, small_settings, checkerboard):
        result = generate_lithophane(checkerboard.astype(np.uint8).tobytes(), small_settings)

        assert result.document is not None
        assert len(result.document) == result.stl_content.count("facet normal")
        assert len(result.document) == result.metadata.n_triangles
        np.testing.assert_allclose(
            read_stl_text(result.stl_content).triangles,
            result.document.vertices,
            atol=1e-6
        )

    def test_all_black_is_first_layer(self, small_settings):
        small_settings.smoothing = LaplacianSmoothing()
        result = generate_lithophane(bytes(16), small_settings)

        assert result.success
        np.testing.assert_allclose(top_heights(result.stl_content), 0.4)

    def test_all_white_is_full_thickness(self, small_settings):
        result = generate_lithophane(bytes([255] * 16), small_settings)

        assert result.success
        np.testing.assert_allclose(top_heights(result.stl_content), 2.0)

    def test_frame_adds_24_triangles(self, small_settings, checkerboard):
        plain = build_lithophane(checkerboard.astype(np.uint8).tobytes(), small_settings)
        small_settings.frame_enabled = True
        framed = build_lithophane(checkerboard.astype(np.uint8).tobytes(), small_settings)

        assert len(framed.document) == len(plain.document) + 24
        assert framed.metadata.triangle_counts["frame"] == 24

    def test_output_is_closed_and_outward(self, random_buffer, random_settings):
        random_settings.frame_enabled = True
        document = build_lithophane(random_buffer, random_settings).document

        assert winding_agreement(document.vertices, document.normals) == 1.0
        assert closure_residual(document.vertices) == pytest.approx(0.0, abs=1e-9)


# ============== Height Field Tests ==============

class TestHeightField:
    """Test the numeric stages together."""

    @pytest.mark.parametrize("smoothing", [
        None,
        LaplacianSmoothing(strength=0.2, passes=5),
        NoSmoothing(),
    ])
    def test_renormalized_to_thickness(self, random_buffer, random_settings, smoothing):
        if smoothing is not None:
            random_settings.smoothing = smoothing

        heights = generate_height_field(random_buffer, random_settings)

        lo, hi = heights.range
        assert lo == pytest.approx(0.6, abs=1e-6)
        assert hi == pytest.approx(3.0, abs=1e-6)

    def test_grid_shape(self, random_buffer, random_settings):
        heights = generate_height_field(random_buffer, random_settings)

        assert heights.width == 12
        assert heights.height == 10

    def test_continuous_policy(self, random_buffer, random_settings):
        random_settings.number_of_layers = None
        random_settings.smoothing = NoSmoothing()

        heights = generate_height_field(random_buffer, random_settings)

        assert len(np.unique(heights.values)) > 20


# ============== Metadata Tests ==============

class TestBuildLithophane:
    """Test the raising core."""

    def test_metadata(self, random_buffer, random_settings):
        build = build_lithophane(random_buffer, random_settings, name="sample")

        meta = build.metadata
        assert meta.name == "sample"
        assert meta.n_triangles == len(build.document)
        assert meta.grid_size == [12, 10]
        assert sum(meta.triangle_counts.values()) == meta.n_triangles
        assert meta.settings["width"] == 6
        assert meta.bounds["min"][2] == 0.0
        assert build.stl_content.startswith("solid sample\n")

    def test_too_small_grid_raises(self, small_settings):
        small_settings.width = 1

        with pytest.raises(SettingsError):
            build_lithophane(bytes(4), small_settings)

    def test_resource_limit_raises(self):
        settings = LithophaneSettings(width=1000, height=1000, resolution_multiplier=10)

        with pytest.raises(ResourceLimitError):
            check_resource_budget(settings)

    def test_large_grid_warns(self, small_settings, caplog):
        with caplog.at_level(logging.WARNING):
            check_resource_budget(small_settings, warn_cells=10)

        assert "Large grid" in caplog.text


# ============== Failure Tests ==============

class TestGenerateFailures:
    """Every failure comes back as a result, never as an exception."""

    def test_empty_buffer(self, small_settings):
        result = generate_lithophane(b"", small_settings)

        assert not result.success
        assert result.message == "Failed to generate STL"
        assert result.error
        assert result.stl_content is None

    def test_short_buffer_padded(self, small_settings):
        """A short buffer is padded, not refused."""
        result = generate_lithophane(bytes([255] * 5), small_settings)

        assert result.success
        assert result.stl_content is not None

    def test_tiny_grid(self, small_settings):
        small_settings.height = 1

        result = generate_lithophane(bytes(4), small_settings)

        assert not result.success
        assert "too small" in result.error

    def test_resource_limit(self):
        settings = LithophaneSettings(width=1000, height=1000, resolution_multiplier=10)

        result = generate_lithophane(b"\x00", settings)

        assert not result.success
        assert "exceeds the limit" in result.error

    def test_out_of_memory(self, small_settings, monkeypatch):
        def explode(heights, settings):
            raise MemoryError()

        monkeypatch.setattr(build_module, "build_mesh", explode)

        result = generate_lithophane(bytes(16), small_settings)

        assert not result.success
        assert result.message == "Failed to generate STL"
        assert "Out of memory" in result.error

    def test_unexpected_error(self, small_settings, monkeypatch):
        def explode(document, name):
            raise RuntimeError()

        monkeypatch.setattr(build_module, "serialize_ascii_stl", explode)

        result = generate_lithophane(bytes(16), small_settings)

        assert not result.success
        assert result.error == "RuntimeError"

    def test_missing_image(self, tmp_path, small_settings):
        result = generate_lithophane(tmp_path / "missing.png", small_settings)

        assert not result.success
        assert result.message == "Failed to process image"

    def test_invalid_image(self, tmp_path, small_settings):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")

        result = generate_lithophane(str(path), small_settings)

        assert not result.success
        assert result.message == "Failed to process image"
        assert "broken.png" in result.error

    def test_loader_failure(self, small_settings):
        def loader(path, width, height):
            raise OSError("disk on fire")

        result = generate_lithophane("photo.jpg", small_settings, loader=loader)

        assert not result.success
        assert result.error == "disk on fire"

    def test_to_dict(self, small_settings):
        result = generate_lithophane(b"", small_settings)

        data = result.to_dict()
        assert data["success"] is False
        assert data["metadata"] is None


# ============== Image Tests ==============

class TestImageInput:
    """Test generation from image files."""

    def test_process_image_resizes(self, gradient_image):
        settings = LithophaneSettings(width=10, height=8, resolution_multiplier=2)

        result = process_image(gradient_image, settings)

        assert result.success
        assert len(result.processed_image_data) == 20 * 16

    def test_generate_from_png(self, gradient_image):
        settings = LithophaneSettings(
            width=10, height=8, resolution_multiplier=2, thickness=2.0
        )

        result = generate_lithophane(gradient_image, settings)

        assert result.success
        assert result.suggested_filename == "lithophane_10x8x2mm.stl"
        assert result.metadata.grid_size == [20, 16]

        lo, hi = result.metadata.bounds["min"], result.metadata.bounds["max"]
        assert lo[0] == pytest.approx(-4.75)
        assert hi[0] == pytest.approx(4.75)
        assert hi[2] == pytest.approx(2.0)

    def test_gradient_left_is_thick(self, gradient_image):
        """Dark (left) columns end up thicker than bright (right) ones."""
        settings = LithophaneSettings(
            width=10, height=8, resolution_multiplier=2, smoothing=NoSmoothing()
        )
        buffer = process_image(gradient_image, settings).processed_image_data

        heights = generate_height_field(buffer, settings)

        assert heights.values[:, 0].mean() > heights.values[:, -1].mean()

    def test_custom_loader(self, small_settings, checkerboard):
        calls = []

        def loader(path, width, height):
            calls.append((path, width, height))
            return checkerboard.astype(np.uint8).tobytes()

        result = generate_lithophane("board.png", small_settings, loader=loader)

        assert result.success
        assert calls == [("board.png", 4, 4)]
