"""Tests for target bitrate and dimension calculation."""

import pytest

from vidshrink.compressor.bitrate import (
    calculate_target_bitrate,
    even_floor,
    normalize_dimensions,
)
from vidshrink.config.models import CompressionConfig


class TestNormalizeDimensions:
    """Tests for even dimension normalization."""

    @pytest.mark.parametrize(
        ("width", "height", "expected"),
        [
            (1920, 1080, (1920, 1080)),
            (1921, 1081, (1920, 1080)),
            (1, 1, (0, 0)),
            (719, 480, (718, 480)),
        ],
    )
    def test_odd_values_round_down(
        self, width: int, height: int, expected: tuple[int, int]
    ) -> None:
        assert normalize_dimensions(width, height) == expected

    def test_even_floor(self) -> None:
        assert even_floor(4) == 4
        assert even_floor(5) == 4


class TestCalculateTargetBitrate:
    """Tests for calculate_target_bitrate."""

    def test_known_source_bitrate(self) -> None:
        """1080p at 8 Mbps keeps 20% of the source bitrate."""
        result = calculate_target_bitrate(1920, 1080, 8_000_000, 30.0, 1920, 1080)
        assert result == 1_600_000

    def test_unknown_source_bitrate_is_estimated(self) -> None:
        """A zero bitrate falls back to pixels * fps * 0.1."""
        result = calculate_target_bitrate(1920, 1080, 0, 30.0, 1920, 1080)
        assert result == int(int(1920 * 1080 * 30.0 * 0.1) * 0.2)

    def test_bogus_source_bitrate_is_estimated(self) -> None:
        """Bitrates at or above the ceiling are treated as unknown."""
        estimated = calculate_target_bitrate(1920, 1080, 0, 30.0, 1920, 1080)
        result = calculate_target_bitrate(
            1920, 1080, 100_000_000, 30.0, 1920, 1080
        )
        assert result == estimated

    def test_scaled_by_pixel_ratio(self) -> None:
        """The base bitrate is scaled by target/source pixels."""
        result = calculate_target_bitrate(1921, 1081, 8_000_000, 30.0, 1920, 1080)
        expected = int(8_000_000.0 * ((1920 * 1080) / (1921 * 1081)) * 0.2)
        assert result == expected
        assert result < 1_600_000

    def test_clamped_to_minimum(self) -> None:
        result = calculate_target_bitrate(320, 240, 500_000, 30.0, 320, 240)
        assert result == 500_000

    def test_clamped_to_maximum(self) -> None:
        result = calculate_target_bitrate(3840, 2160, 99_000_000, 60.0, 3840, 2160)
        assert result == 10_000_000

    def test_zero_source_pixels_does_not_divide_by_zero(self) -> None:
        result = calculate_target_bitrate(0, 0, 8_000_000, 30.0, 0, 0)
        assert result == 1_600_000

    def test_custom_config(self) -> None:
        """Ratio and clamps come from the configuration."""
        config = CompressionConfig(
            compression_ratio=0.5, min_bitrate=100_000, max_bitrate=20_000_000
        )
        result = calculate_target_bitrate(
            1920, 1080, 8_000_000, 30.0, 1920, 1080, config
        )
        assert result == 4_000_000
