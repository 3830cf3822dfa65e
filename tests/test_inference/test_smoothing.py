"""Tests for separable Gaussian smoothing and border index extension."""

from __future__ import annotations

import math

import pytest
import torch

from anomap.inference.smoothing import (
    BoundaryMode,
    extend_indices,
    gaussian_kernel_1d,
    gaussian_smooth,
    kernel_radius,
)
from tests.conftest import make_peak_map

BOTH_MODES = [BoundaryMode.REFLECT, BoundaryMode.CLAMP]


def _dense_reference(
    anomaly_map: torch.Tensor,
    sigma: float,
    boundary: BoundaryMode,
) -> torch.Tensor:
    """Direct 2-D convolution with the outer-product kernel (slow, float64)."""
    kernel = gaussian_kernel_1d(sigma, dtype=torch.float64)
    radius = kernel.numel() // 2
    h, w = anomaly_map.shape
    rows = extend_indices(h, radius, boundary)
    cols = extend_indices(w, radius, boundary)
    extended = anomaly_map.double()[rows][:, cols]  # (H + 2r, W + 2r)
    kernel_2d = kernel[:, None] * kernel[None, :]
    patches = extended.unfold(0, kernel.numel(), 1).unfold(1, kernel.numel(), 1)
    return (patches * kernel_2d).sum(dim=(-2, -1))


# ---------------------------------------------------------------------------
# gaussian_kernel_1d
# ---------------------------------------------------------------------------


class TestGaussianKernel:
    """Tests for gaussian_kernel_1d."""

    @pytest.mark.parametrize("sigma", [0.3, 1.0, 2.5, 4.0, 7.2])
    def test_odd_length(self, sigma: float) -> None:
        """Kernel length is 2 * ceil(4 sigma) + 1."""
        kernel = gaussian_kernel_1d(sigma)
        assert kernel.numel() % 2 == 1
        assert kernel.numel() == 2 * math.ceil(4 * sigma) + 1

    @pytest.mark.parametrize("sigma", [0.3, 1.0, 2.5, 4.0, 7.2])
    def test_sums_to_one(self, sigma: float) -> None:
        """Weights sum to 1 within 1e-4."""
        kernel = gaussian_kernel_1d(sigma)
        assert abs(kernel.sum().item() - 1.0) < 1e-4

    def test_default_sigma_has_33_taps(self) -> None:
        """sigma=4 gives radius 16 and 33 taps."""
        assert kernel_radius(4.0) == 16
        assert gaussian_kernel_1d(4.0).numel() == 33

    def test_symmetric_and_peaked_at_center(self) -> None:
        """Kernel is symmetric with its maximum in the middle."""
        kernel = gaussian_kernel_1d(4.0)
        assert torch.allclose(kernel, kernel.flip(0))
        assert kernel.argmax().item() == 16

    def test_weight_formula(self) -> None:
        """Weights follow exp(-(i - r)^2 / (2 sigma^2)) up to normalization."""
        sigma = 2.0
        kernel = gaussian_kernel_1d(sigma, dtype=torch.float64)
        radius = kernel.numel() // 2
        ratio = kernel[radius + 3] / kernel[radius]
        assert ratio.item() == pytest.approx(math.exp(-9 / (2 * sigma**2)), rel=1e-12)

    def test_dtype(self) -> None:
        """Requested dtype is honored."""
        assert gaussian_kernel_1d(1.0).dtype == torch.float32
        assert gaussian_kernel_1d(1.0, dtype=torch.float64).dtype == torch.float64

    @pytest.mark.parametrize("sigma", [0.0, -1.0])
    def test_non_positive_sigma_raises(self, sigma: float) -> None:
        """sigma <= 0 raises ValueError."""
        with pytest.raises(ValueError, match="sigma must be positive"):
            gaussian_kernel_1d(sigma)


# ---------------------------------------------------------------------------
# extend_indices
# ---------------------------------------------------------------------------


class TestExtendIndices:
    """Tests for extend_indices."""

    def test_reflect_repeats_edge_sample(self) -> None:
        """k < 0 -> -k - 1 and k >= N -> 2N - k - 1."""
        idx = extend_indices(5, 3, BoundaryMode.REFLECT)
        assert idx.tolist() == [2, 1, 0, 0, 1, 2, 3, 4, 4, 3, 2]

    def test_clamp_repeats_edge_value(self) -> None:
        """Out-of-range indices clamp to the nearest edge."""
        idx = extend_indices(5, 3, BoundaryMode.CLAMP)
        assert idx.tolist() == [0, 0, 0, 0, 1, 2, 3, 4, 4, 4, 4]

    def test_accepts_string_mode(self) -> None:
        """Mode may be given by value."""
        assert torch.equal(
            extend_indices(6, 2, "reflect"),
            extend_indices(6, 2, BoundaryMode.REFLECT),
        )

    @pytest.mark.parametrize("mode", BOTH_MODES)
    def test_radius_larger_than_length_stays_in_range(self, mode: BoundaryMode) -> None:
        """Indices stay in [0, N) even when the radius exceeds N."""
        idx = extend_indices(3, 16, mode)
        assert idx.numel() == 3 + 32
        assert idx.min().item() >= 0
        assert idx.max().item() <= 2

    def test_reflect_is_periodic_for_large_radius(self) -> None:
        """Reflection repeats with period 2N beyond the first mirror."""
        idx = extend_indices(2, 4, BoundaryMode.REFLECT)
        # virtual positions -4..5 over signal [0, 1]
        assert idx.tolist() == [0, 1, 1, 0, 0, 1, 1, 0, 0, 1]

    def test_invalid_mode_raises(self) -> None:
        """Unknown mode raises ValueError."""
        with pytest.raises(ValueError):
            extend_indices(5, 2, "wrap")

    def test_zero_length_raises(self) -> None:
        """Empty signal raises ValueError."""
        with pytest.raises(ValueError, match="length must be positive"):
            extend_indices(0, 2)


# ---------------------------------------------------------------------------
# gaussian_smooth
# ---------------------------------------------------------------------------


class TestGaussianSmooth:
    """Tests for gaussian_smooth."""

    def test_output_shape_2d(self, random_map: torch.Tensor) -> None:
        """(H, W) in, (H, W) out."""
        assert gaussian_smooth(random_map).shape == random_map.shape

    def test_output_shape_batched(self) -> None:
        """(B, H, W) in, (B, H, W) out."""
        maps = torch.rand(3, 40, 56)
        assert gaussian_smooth(maps, sigma=2.0).shape == (3, 40, 56)

    def test_input_not_modified(self, random_map: torch.Tensor) -> None:
        """The raw map is read-only for the smoother."""
        original = random_map.clone()
        smoothed = gaussian_smooth(random_map)
        assert torch.equal(random_map, original)
        assert smoothed.data_ptr() != random_map.data_ptr()

    @pytest.mark.parametrize("mode", BOTH_MODES)
    def test_uniform_map_preserved(self, mode: BoundaryMode) -> None:
        """A constant map stays constant under either border policy."""
        uniform = torch.full((224, 224), 3.25)
        smoothed = gaussian_smooth(uniform, sigma=4.0, boundary=mode)
        assert torch.allclose(smoothed, uniform, atol=1e-5)

    @pytest.mark.parametrize("mode", BOTH_MODES)
    def test_linearity(self, mode: BoundaryMode) -> None:
        """smooth(a*A + b*B) == a*smooth(A) + b*smooth(B)."""
        generator = torch.Generator().manual_seed(3)
        map_a = torch.rand(64, 48, generator=generator)
        map_b = torch.rand(64, 48, generator=generator)
        a, b = 2.5, -0.75
        lhs = gaussian_smooth(a * map_a + b * map_b, sigma=3.0, boundary=mode)
        rhs = (
            a * gaussian_smooth(map_a, sigma=3.0, boundary=mode)
            + b * gaussian_smooth(map_b, sigma=3.0, boundary=mode)
        )
        assert torch.allclose(lhs, rhs, atol=1e-5)

    @pytest.mark.parametrize("mode", BOTH_MODES)
    def test_matches_dense_2d_convolution(self, mode: BoundaryMode) -> None:
        """Two 1-D passes equal one 2-D pass with the outer-product kernel."""
        generator = torch.Generator().manual_seed(11)
        anomaly_map = torch.rand(30, 26, generator=generator, dtype=torch.float64)
        separable = gaussian_smooth(anomaly_map, sigma=2.0, boundary=mode)
        dense = _dense_reference(anomaly_map, sigma=2.0, boundary=mode)
        assert torch.allclose(separable, dense, atol=1e-10)

    def test_reflect_and_clamp_differ_near_border(self) -> None:
        """The border policy changes values near the edges only."""
        anomaly_map = torch.zeros(64, 64)
        anomaly_map[:, 0] = 10.0  # bright left edge column
        reflect = gaussian_smooth(anomaly_map, sigma=2.0, boundary="reflect")
        clamp = gaussian_smooth(anomaly_map, sigma=2.0, boundary="clamp")
        assert not torch.allclose(reflect[:, :4], clamp[:, :4])
        assert torch.allclose(reflect[:, 20:], clamp[:, 20:], atol=1e-6)

    def test_smoothed_values_within_input_range(self, random_map: torch.Tensor) -> None:
        """A convex combination never leaves [min, max] of the input."""
        smoothed = gaussian_smooth(random_map)
        assert smoothed.min() >= random_map.min() - 1e-5
        assert smoothed.max() <= random_map.max() + 1e-5

    def test_peak_is_dispersed(self) -> None:
        """A single 100.0 spike is spread out but stays localized."""
        smoothed = gaussian_smooth(make_peak_map(), sigma=4.0)
        peak = smoothed.max().item()
        assert 0.0 < peak < 100.0
        row, col = divmod(int(smoothed.argmax().item()), smoothed.shape[1])
        assert abs(row - 100) <= 2
        assert abs(col - 100) <= 2

    def test_mass_preserved_away_from_border(self) -> None:
        """Total mass of an interior spike is preserved."""
        smoothed = gaussian_smooth(make_peak_map(), sigma=4.0)
        assert smoothed.sum().item() == pytest.approx(100.0, rel=1e-4)

    def test_tiny_map_with_large_radius(self) -> None:
        """Maps smaller than the kernel radius are handled."""
        anomaly_map = torch.tensor([[1.0, 2.0], [3.0, 4.0]])
        smoothed = gaussian_smooth(anomaly_map, sigma=4.0)
        assert smoothed.shape == (2, 2)
        assert torch.isfinite(smoothed).all()

    def test_deterministic(self, random_map: torch.Tensor) -> None:
        """Repeated calls are bit-identical."""
        assert torch.equal(gaussian_smooth(random_map), gaussian_smooth(random_map))

    def test_float64_preserved(self) -> None:
        """float64 input stays float64; other dtypes become float32."""
        assert gaussian_smooth(torch.rand(8, 8, dtype=torch.float64), 1.0).dtype == torch.float64
        assert gaussian_smooth(torch.ones(8, 8, dtype=torch.int32), 1.0).dtype == torch.float32

    def test_invalid_ndim_raises(self) -> None:
        """1-D and 4-D inputs raise ValueError."""
        with pytest.raises(ValueError, match="Expected anomaly map"):
            gaussian_smooth(torch.rand(10))
        with pytest.raises(ValueError, match="Expected anomaly map"):
            gaussian_smooth(torch.rand(1, 1, 8, 8))

    def test_empty_map_raises(self) -> None:
        """Empty map raises ValueError."""
        with pytest.raises(ValueError, match="empty"):
            gaussian_smooth(torch.zeros(0, 5))
