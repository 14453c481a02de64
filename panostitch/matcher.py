"""
Feature matching using L2 distance (Euclidean distance).
"""

import numpy as np


class MatchData:
    """
    Correspondences between two feature sets.
    
    Each row of ``pairs`` is (index in first set, index in second set).
    """
    
    def __init__(self, pairs=None):
        if pairs is None:
            pairs = np.empty((0, 2), dtype=np.int64)
        self.pairs = np.asarray(pairs, dtype=np.int64).reshape(-1, 2)
    
    def __len__(self):
        return len(self.pairs)
    
    def reversed(self):
        """Return the same correspondences with the two sides swapped."""
        return MatchData(self.pairs[:, ::-1].copy())
    
    def subset(self, mask):
        return MatchData(self.pairs[mask])
    
    def __repr__(self):
        return f"MatchData(n={len(self)})"


class FeatureMatcher:
    """
    Feature matcher using L2 (Euclidean) distance.
    Implements brute-force matching with cross-check and ratio test.
    """
    
    def __init__(self, cross_check=True, ratio_threshold=0.75):
        """
        Initialize feature matcher.
        
        Args:
            cross_check: Whether to perform cross-check for matches
            ratio_threshold: Lowe's ratio test threshold (0.75 recommended)
        """
        self.cross_check = cross_check
        self.ratio_threshold = ratio_threshold
    
    def match(self, feats1, feats2):
        """
        Match features between two feature sets.
        
        Args:
            feats1: FeatureSet of the first image
            feats2: FeatureSet of the second image
            
        Returns:
            MatchData sorted by descriptor distance
        """
        if len(feats1) < 2 or len(feats2) < 2:
            return MatchData()
        
        distances = self._compute_distance_matrix(
            feats1.descriptors.astype(np.float32),
            feats2.descriptors.astype(np.float32))
        
        best_1to2, ok_1to2 = self._find_best_matches(distances)
        query = np.nonzero(ok_1to2)[0]
        train = best_1to2[query]
        
        if self.cross_check:
            # Keep only mutual best matches
            best_2to1, ok_2to1 = self._find_best_matches(distances.T)
            mutual = ok_2to1[train] & (best_2to1[train] == query)
            query, train = query[mutual], train[mutual]
        
        order = np.argsort(distances[query, train], kind='stable')
        return MatchData(np.column_stack([query[order], train[order]]))
    
    def _compute_distance_matrix(self, desc1, desc2):
        """
        Compute L2 distance matrix between two sets of descriptors.
        
        Returns:
            distances: N x M matrix where distances[i, j] is L2 distance 
                      between desc1[i] and desc2[j]
        """
        # ||a - b||^2 = ||a||^2 + ||b||^2 - 2*a·b
        sq_norms1 = np.sum(desc1**2, axis=1, keepdims=True)
        sq_norms2 = np.sum(desc2**2, axis=1, keepdims=True)
        
        sq_distances = sq_norms1 + sq_norms2.T - 2 * np.dot(desc1, desc2.T)
        
        # Ensure non-negative (numerical stability)
        return np.sqrt(np.maximum(sq_distances, 0))
    
    def _find_best_matches(self, distances):
        """
        Apply Lowe's ratio test to every row of a distance matrix.
        
        Returns:
            nearest: Index of the nearest neighbour per row
            accepted: Boolean mask of rows passing the ratio test
        """
        two_nearest = np.argpartition(distances, 1, axis=1)[:, :2]
        rows = np.arange(distances.shape[0])
        d0 = distances[rows, two_nearest[:, 0]]
        d1 = distances[rows, two_nearest[:, 1]]
        
        swap = d1 < d0
        nearest = np.where(swap, two_nearest[:, 1], two_nearest[:, 0])
        nearest_dist = np.minimum(d0, d1)
        second_dist = np.maximum(d0, d1)
        
        accepted = (second_dist > 0) & (nearest_dist < self.ratio_threshold * second_dist)
        return nearest, accepted
