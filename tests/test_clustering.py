"""
Tests for the clustering oracle and the 1D codebook quantization.
"""

import pytest
import numpy as np
from pysog._clustering import (
    CODEBOOK_SIZE,
    ClusteringResult,
    KMeansClusterer,
    cluster_1d,
)


class FixedClusterer:
    """Clusterer returning a predefined result."""

    def __init__(self, centroids, labels):
        self.result = ClusteringResult(np.asarray(centroids, dtype=np.float64),
                                       np.asarray(labels, dtype=np.int64))
        self.calls = []

    def cluster(self, data, k):
        self.calls.append((data.copy(), k))
        return self.result


class TestKMeansClusterer:
    """Test cases for KMeansClusterer."""

    def test_labels_valid(self):
        """Test that every label indexes a returned centroid."""
        rng = np.random.default_rng(0)
        data = rng.normal(size=(2000, 3))
        result = KMeansClusterer(seed=0).cluster(data, 16)

        assert result.centroids.shape == (16, 3)
        assert result.labels.shape == (2000,)
        assert result.labels.min() >= 0
        assert result.labels.max() < 16

    def test_separated_clusters(self):
        """Test that well separated groups are found."""
        rng = np.random.default_rng(1)
        data = np.concatenate([
            rng.normal(0.0, 0.01, size=(100, 1)),
            rng.normal(10.0, 0.01, size=(100, 1)),
        ])
        result = KMeansClusterer(seed=1).cluster(data, 2)

        centers = np.sort(result.centroids[:, 0])
        np.testing.assert_allclose(centers, [0.0, 10.0], atol=0.05)
        assert len(set(result.labels[:100])) == 1
        assert len(set(result.labels[100:])) == 1

    def test_fewer_distinct_rows_than_clusters(self):
        """Test that k is clamped to the number of distinct rows."""
        data = np.array([[1.0], [2.0], [1.0], [3.0], [2.0]])
        result = KMeansClusterer().cluster(data, 256)

        assert len(result.centroids) == 3
        np.testing.assert_array_equal(result.centroids[result.labels], data)

    def test_close_distinct_rows_labelled_exactly(self):
        """Test that nearly equal large rows keep their own centroid."""
        base = 1.0e8
        data = np.array([[base], [base + 1e-7 * base], [base], [base + 2e-7 * base]])
        result = KMeansClusterer().cluster(data, 256)

        assert len(result.centroids) == 3
        np.testing.assert_array_equal(result.centroids[result.labels], data)
        assert result.labels[0] == result.labels[2]
        assert len(set(result.labels.tolist())) == 3

    def test_single_value(self):
        """Test clustering of identical rows."""
        data = np.full((50, 2), 7.0)
        result = KMeansClusterer().cluster(data, 4)

        np.testing.assert_array_equal(result.centroids, [[7.0, 7.0]])
        np.testing.assert_array_equal(result.labels, np.zeros(50))

    def test_random_init(self):
        """Test the random initialization."""
        rng = np.random.default_rng(2)
        data = rng.uniform(size=(500, 2))
        result = KMeansClusterer(iterations=3, init='random', seed=2).cluster(data, 8)
        assert result.centroids.shape == (8, 2)
        assert result.labels.max() < 8

    def test_empty_data(self):
        """Test error for empty data."""
        with pytest.raises(ValueError, match="non-empty"):
            KMeansClusterer().cluster(np.zeros((0, 1)), 4)

    def test_invalid_k(self):
        """Test error for a non-positive cluster count."""
        with pytest.raises(ValueError, match="must be positive"):
            KMeansClusterer().cluster(np.zeros((4, 1)), 0)


class TestCluster1D:
    """Test cases for cluster_1d."""

    def test_codebook_sorted_and_labels_valid(self):
        """Test that the codebook is ascending and labels index it."""
        rng = np.random.default_rng(3)
        columns = rng.normal(size=(3000, 3))
        result = cluster_1d(columns, KMeansClusterer(seed=3))

        assert result.codebook.shape == (CODEBOOK_SIZE,)
        assert result.codebook.dtype == np.float32
        assert np.all(np.diff(result.codebook) >= 0)
        assert result.labels.shape == (3000, 3)
        assert result.labels.dtype == np.uint8

    def test_reconstruction_error(self):
        """Test that codebook lookup approximates the input."""
        rng = np.random.default_rng(4)
        columns = rng.uniform(-1, 1, size=(5000, 3))
        result = cluster_1d(columns, KMeansClusterer(seed=4))

        decoded = result.codebook[result.labels]
        # 256 buckets over a range of 2
        assert np.mean(np.abs(decoded - columns)) < 0.01

    def test_column_major_pooling(self):
        """Test that columns are pooled column 0 first."""
        columns = np.array([[1.0, 4.0], [2.0, 5.0], [3.0, 6.0]])
        clusterer = FixedClusterer(centroids=[[0.0]], labels=np.zeros(6))
        cluster_1d(columns, clusterer)

        data, k = clusterer.calls[0]
        assert k == 256
        np.testing.assert_array_equal(data[:, 0], [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])

    def test_labels_remapped_to_sorted_order(self):
        """Test that labels follow the centroid sort."""
        columns = np.array([[10.0, 0.0], [5.0, 10.0]])
        # Pooled values: 10, 5, 0, 10
        clusterer = FixedClusterer(centroids=[[10.0], [0.0], [5.0]], labels=[0, 2, 1, 0])
        result = cluster_1d(columns, clusterer)

        np.testing.assert_array_equal(result.codebook[:3], [0.0, 5.0, 10.0])
        np.testing.assert_array_equal(result.labels, [[2, 0], [1, 2]])
        np.testing.assert_array_equal(result.codebook[result.labels], columns)

    def test_padding_repeats_largest(self):
        """Test that short codebooks are padded with their largest value."""
        columns = np.array([[1.0, 2.0, 3.0]] * 10)
        result = cluster_1d(columns, KMeansClusterer())

        np.testing.assert_array_equal(result.codebook[:3], [1.0, 2.0, 3.0])
        assert np.all(result.codebook[3:] == 3.0)
        np.testing.assert_array_equal(result.labels, [[0, 1, 2]] * 10)

    def test_invalid_labels(self):
        """Test that labels outside the centroid range are rejected."""
        clusterer = FixedClusterer(centroids=[[0.0], [1.0]], labels=[0, 2])
        with pytest.raises(ValueError, match="valid centroid indices"):
            cluster_1d(np.array([[0.0], [1.0]]), clusterer)

    def test_too_many_centroids(self):
        """Test that more than 256 centroids are rejected."""
        clusterer = FixedClusterer(centroids=np.zeros((257, 1)), labels=[0])
        with pytest.raises(ValueError, match="centroids"):
            cluster_1d(np.array([[0.0]]), clusterer)

    def test_wrong_shape(self):
        """Test error for input that is not a matrix."""
        with pytest.raises(ValueError, match="matrix"):
            cluster_1d(np.zeros(5), KMeansClusterer())
