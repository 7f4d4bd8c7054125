"""
End-to-end validation tests for SOG encoding and decoding.

These tests run complete clouds through encode() and decode() and check
the reconstruction error of every channel.
"""

import logging
import pytest
import numpy as np
from pysog import SogConfig, SplatCloud, decode, encode, morton_order
from pysog._splats import opacity_to_alpha


def morton_sorted(cloud):
    """The cloud in the order the decoder returns it."""
    p = cloud.positions
    return cloud.subset(morton_order(p[:, 0], p[:, 1], p[:, 2]))


class TestValidation:
    """End-to-end validation tests."""

    def test_single_splat(self):
        """Test a single splat with known values."""
        cloud = SplatCloud(
            positions=[[1.0, 2.0, 3.0]],
            scales=np.log([[0.1, 0.1, 0.1]]),
            rotations=[[0.0, 0.0, 0.0, 1.0]],
            opacities=[0.0],
            sh=np.full((1, 1, 3), 0.25),
        )
        result = decode(encode(cloud))

        assert result.count == 1
        assert result.sh_degree == 0
        np.testing.assert_allclose(result.positions[0], [1.0, 2.0, 3.0], atol=0.05)
        np.testing.assert_allclose(result.scales[0], np.log([0.1, 0.1, 0.1]), rtol=1e-6)
        np.testing.assert_allclose(result.sh[0, 0], [0.25, 0.25, 0.25], rtol=1e-6)

        # The 8-bit components cannot hold 0 exactly, compare as rotations
        rotation = result.rotations[0].astype(np.float64)
        assert 1.0 - abs(rotation @ np.array([0.0, 0.0, 0.0, 1.0])) < 1e-3
        np.testing.assert_allclose(rotation, [0.0, 0.0, 0.0, 1.0], atol=1.0 / 255)

        assert abs(opacity_to_alpha(result.opacities[0]) - 0.5) <= 1.0 / 255

    def test_large_cloud(self):
        """Test 10000 random splats with degree 2 harmonics."""
        rng = np.random.default_rng(42)
        n = 10000
        rotations = rng.normal(size=(n, 4))
        rotations /= np.linalg.norm(rotations, axis=1, keepdims=True)
        cloud = SplatCloud(
            positions=rng.uniform(-50, 50, size=(n, 3)),
            scales=rng.uniform(-6, -1, size=(n, 3)),
            rotations=rotations,
            opacities=rng.normal(0, 2, size=n),
            sh=np.concatenate([
                rng.uniform(-1, 1, size=(n, 1, 3)),
                rng.normal(0, 0.1, size=(n, 8, 3)),
            ], axis=1),
        )

        data = encode(cloud, SogConfig(init='random', seed=0))
        result = decode(data)
        expected = morton_sorted(cloud)

        assert result.count == n
        assert result.sh_degree == 2
        assert np.mean(np.abs(result.positions - expected.positions)) < 0.1
        assert np.mean(np.abs(result.colors - expected.colors)) < 1.0 / 128
        assert np.mean(np.abs(result.scales - expected.scales)) < 0.05
        assert np.max(np.abs(opacity_to_alpha(result.opacities)
                             - opacity_to_alpha(expected.opacities))) <= 1.0 / 255 + 1e-6
        # Higher-order terms go through a palette, only check they stay close
        assert np.mean(np.abs(result.sh[:, 1:] - expected.sh[:, 1:])) < 0.1

        dots = np.abs(np.sum(result.rotations.astype(np.float64) * expected.rotations, axis=1))
        assert np.min(dots) > 1.0 - 1e-3

    def test_coincident_splats(self, caplog):
        """Test 300 splats sharing one position."""
        rng = np.random.default_rng(5)
        n = 300
        cloud = SplatCloud(
            positions=np.tile([[5.0, -3.0, 0.5]], (n, 1)),
            scales=rng.uniform(-4, -2, size=(n, 3)),
            rotations=np.tile([[0.0, 0.0, 0.0, 1.0]], (n, 1)),
            opacities=rng.normal(size=n),
            sh=rng.uniform(-1, 1, size=(n, 4, 3)),
        )

        p = cloud.positions
        np.testing.assert_array_equal(morton_order(p[:, 0], p[:, 1], p[:, 2]), np.arange(n))

        with caplog.at_level(logging.WARNING, logger="pysog"):
            result = decode(encode(cloud, SogConfig(seed=0)))
        assert caplog.text == ""

        for array in result.to_dict().values():
            assert not np.isnan(array).any()
        np.testing.assert_allclose(result.positions, cloud.positions, atol=1e-5)
        # Identity order, so opacities line up with the input
        np.testing.assert_allclose(opacity_to_alpha(result.opacities),
                                   opacity_to_alpha(cloud.opacities), atol=1.0 / 255)

    @pytest.mark.parametrize("degree", [1, 2, 3])
    def test_sh_degrees(self, degree):
        """Test that every SH degree survives the round trip."""
        rng = np.random.default_rng(degree)
        n = 80
        dims = (degree + 1) ** 2
        cloud = SplatCloud.empty(n, sh_degree=degree)
        cloud.positions[:] = rng.uniform(-1, 1, size=(n, 3))
        cloud.sh[:] = rng.uniform(-0.5, 0.5, size=(n, dims, 3))

        result = decode(encode(cloud, SogConfig(seed=0)))
        assert result.sh_degree == degree
        assert result.sh.shape == (n, dims, 3)

    @pytest.mark.parametrize("order", ["planar", "interleaved"])
    def test_sh_coefficient_order(self, order):
        """Test that the feature order does not change the container layout."""
        rng = np.random.default_rng(9)
        n = 50
        # Two distinct coefficient sets, so both orders find an exact palette
        vectors = rng.uniform(-0.5, 0.5, size=(2, 3, 3))
        cloud = SplatCloud.empty(n, sh_degree=1)
        cloud.positions[:] = rng.uniform(-1, 1, size=(n, 3))
        cloud.sh[:, 1:] = vectors[np.arange(n) % 2]

        result = decode(encode(cloud, SogConfig(seed=0, sh_coefficient_order=order)))
        expected = morton_sorted(cloud)
        np.testing.assert_allclose(result.sh[:, 1:], expected.sh[:, 1:], atol=1e-6)

    def test_antialias_flag(self):
        """Test that the antialias flag is carried through."""
        cloud = SplatCloud.empty(3, antialias=True)
        assert decode(encode(cloud)).antialias is True
        assert decode(encode(SplatCloud.empty(3))).antialias is False
