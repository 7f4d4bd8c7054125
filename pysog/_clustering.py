"""
Clustering used to build the SOG codebooks.

The encoder only depends on the Clusterer protocol: given an (m, d) matrix
and a desired cluster count k, return at most k centroids and one valid
centroid index per row. KMeansClusterer is the default implementation and
wraps scikit-learn's KMeans.

cluster_1d() turns a clustering of pooled scalar values into a sorted
256-entry codebook plus one byte label per value.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
import numpy as np
from sklearn.cluster import KMeans


logger = logging.getLogger(__name__)

# Number of entries of every 1D codebook
CODEBOOK_SIZE = 256


@dataclass
class ClusteringResult:
    """Result of clustering m rows of d features.

    Attributes:
        centroids: (k, d) cluster centers, k <= requested cluster count
        labels: (m,) index of the centroid assigned to each row
    """
    centroids: np.ndarray
    labels: np.ndarray


@dataclass
class Codebook1D:
    """Byte quantization of a group of columns with one shared codebook.

    Attributes:
        codebook: (256,) float32 codebook, sorted ascending
        labels: (rows, columns) uint8 codebook indices
    """
    codebook: np.ndarray
    labels: np.ndarray


class Clusterer(Protocol):
    """Anything that can cluster rows of a feature matrix."""

    def cluster(self, data: np.ndarray, k: int) -> ClusteringResult:
        ...


class KMeansClusterer:
    """Clusterer based on scikit-learn's KMeans."""

    def __init__(self, iterations: int = 10, init: str = 'k-means++',
                 seed: Optional[int] = None):
        """Initialize the clusterer.

        Args:
            iterations: Maximum number of Lloyd iterations
            init: Initialization method, 'k-means++' or 'random'
            seed: Random state for reproducible clusterings
        """
        self.iterations = iterations
        self.init = init
        self.seed = seed

    def cluster(self, data: np.ndarray, k: int) -> ClusteringResult:
        """Cluster the rows of `data` into at most `k` clusters.

        Args:
            data: (m, d) feature matrix
            k: Desired number of clusters

        Returns:
            The clustering result. Fewer than k centroids are returned if
            the data has fewer than k distinct rows.
        """
        data = np.asarray(data, dtype=np.float64)
        if data.ndim != 2 or len(data) == 0:
            raise ValueError(f"Expected a non-empty (m, d) matrix, got shape {data.shape}")
        if k < 1:
            raise ValueError(f"Cluster count must be positive, got {k}")

        distinct, inverse = np.unique(data, axis=0, return_inverse=True)
        if len(distinct) <= k:
            # Every distinct row becomes its own centroid
            return ClusteringResult(centroids=distinct,
                                    labels=inverse.reshape(-1).astype(np.int64))

        logger.debug("Clustering %d rows of %d features into %d clusters",
                     data.shape[0], data.shape[1], k)
        kmeans = KMeans(n_clusters=k, init=self.init, n_init=1,
                        max_iter=self.iterations, random_state=self.seed)
        kmeans.fit(data)
        return ClusteringResult(centroids=kmeans.cluster_centers_,
                                labels=kmeans.labels_.astype(np.int64))


def cluster_1d(columns: np.ndarray, clusterer: Clusterer) -> Codebook1D:
    """Quantize a group of columns to bytes using one shared 256-entry codebook.

    All columns are pooled into one 1D dataset (column 0 first, then column
    1, ...), clustered into 256 clusters and the centroids are sorted, so
    that label order follows value order.

    Args:
        columns: (rows, columns) values, e.g. the x/y/z scales of all splats
        clusterer: The clustering oracle

    Returns:
        The sorted codebook and a (rows, columns) uint8 label table
    """
    columns = np.asarray(columns, dtype=np.float64)
    if columns.ndim != 2:
        raise ValueError(f"Expected a (rows, columns) matrix, got shape {columns.shape}")
    num_rows, num_columns = columns.shape

    # Column-major flattening: value (r, c) lives at c * num_rows + r
    flat = columns.T.reshape(-1, 1)
    result = clusterer.cluster(flat, CODEBOOK_SIZE)

    centroids = np.asarray(result.centroids, dtype=np.float64).reshape(-1)
    labels = np.asarray(result.labels, dtype=np.int64)
    if not 1 <= len(centroids) <= CODEBOOK_SIZE:
        raise ValueError(f"Clustering returned {len(centroids)} centroids, "
                         f"expected 1 to {CODEBOOK_SIZE}")
    if labels.shape != (len(flat),):
        raise ValueError(f"Clustering returned {labels.shape} labels, expected ({len(flat)},)")
    if labels.min() < 0 or labels.max() >= len(centroids):
        raise ValueError("Clustering returned labels that are not valid centroid indices")

    # Order centroids smallest to largest and remap the labels
    order = np.argsort(centroids, kind='stable')
    inv_order = np.empty_like(order)
    inv_order[order] = np.arange(len(order))
    sorted_centroids = centroids[order]
    labels = inv_order[labels]

    codebook = np.empty(CODEBOOK_SIZE, dtype=np.float32)
    codebook[:len(sorted_centroids)] = sorted_centroids
    # Unused entries repeat the largest value, so the codebook stays sorted
    codebook[len(sorted_centroids):] = sorted_centroids[-1]

    label_table = labels.reshape(num_columns, num_rows).T.astype(np.uint8)
    return Codebook1D(codebook=codebook, labels=np.ascontiguousarray(label_table))
