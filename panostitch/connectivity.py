"""
Pairwise connectivity between images.

Two strategies: try every unordered pair and keep what fits, or assume an
ordered panoramic ring and require each image to fit its successor.
"""

import itertools
import logging
from typing import Dict, Set, Tuple

from .errors import ConnectivityError
from .homography import MatchInfo
from .utils import parallel_map, timed

logger = logging.getLogger(__name__)


class PairwiseGraph:
    """
    Adjacency sets plus a sparse table of directional fits.
    
    ``matches[(i, j)].homo`` maps image j into image i, and the entry at
    (j, i) always holds its exact inverse.
    """
    
    def __init__(self, n):
        self.n = n
        self.adjacency: Dict[int, Set[int]] = {i: set() for i in range(n)}
        self.matches: Dict[Tuple[int, int], MatchInfo] = {}
    
    def add(self, i, j, info):
        """Record a successful fit of image j onto image i, both directions."""
        self.matches[(i, j)] = info
        self.matches[(j, i)] = info.reversed(indices=(i, j))
        self.adjacency[i].add(j)
        self.adjacency[j].add(i)
    
    def has_edge(self, i, j):
        return j in self.adjacency.get(i, ())
    
    def transform(self, i, j):
        """Homography mapping image j into image i."""
        try:
            return self.matches[(i, j)].homo
        except KeyError:
            raise ConnectivityError(f"Image {i} and {j} are not connected",
                                    indices=(i, j), phase="transform")
    
    def edges(self):
        return sorted((i, j) for (i, j) in self.matches if i < j)
    
    def connected_components(self):
        """Connected subgraphs, largest first, ties broken by lowest index."""
        seen = set()
        components = []
        for start in range(self.n):
            if start in seen:
                continue
            stack = [start]
            members = set()
            while stack:
                node = stack.pop()
                if node in members:
                    continue
                members.add(node)
                stack.extend(self.adjacency[node] - members)
            seen |= members
            components.append(sorted(members))
        components.sort(key=lambda c: (-len(c), c[0]))
        return components


def _fit_pair(i, j, feats, matcher, estimator):
    match = matcher.match(feats[i], feats[j])
    return estimator.fit(match, feats[i], feats[j])


def pairwise_match(feats, matcher, estimator, workers=1):
    """
    Fit every unordered pair of images.
    
    Pairs that cannot be fitted are left out of the graph.
    """
    n = len(feats)
    graph = PairwiseGraph(n)
    pairs = list(itertools.combinations(range(n), 2))
    
    with timed("pairwise_match()"):
        results = parallel_map(
            lambda pair: _fit_pair(pair[0], pair[1], feats, matcher, estimator),
            pairs, workers)
    
    for (i, j), (succ, info) in zip(pairs, results):
        if not succ:
            logger.debug(f"No connection between image {i} and {j}")
            continue
        logger.info(f"Connection between image {i} and {j}, "
                    f"ninliers={info.n_inliers}, conf={info.confidence:.3f}")
        graph.add(i, j, info)
    
    return graph


def assume_pano_pairwise(feats, matcher, estimator):
    """
    Fit every image onto its successor in ring order.
    
    Raises:
        ConnectivityError: if any adjacent pair does not match
    """
    n = len(feats)
    graph = PairwiseGraph(n)
    
    with timed("assume_pano_pairwise()"):
        for i in range(n):
            nxt = (i + 1) % n
            succ, info = _fit_pair(i, nxt, feats, matcher, estimator)
            if not succ:
                raise ConnectivityError(f"Image {i} and {nxt} don't match",
                                        indices=(i, nxt), phase="assume_pano_pairwise")
            logger.info(f"Match between image {i} and {nxt}, "
                        f"ninliers={info.n_inliers}, conf={info.confidence:.3f}")
            graph.add(i, nxt, info)
    
    return graph
