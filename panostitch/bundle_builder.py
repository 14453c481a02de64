"""
Bundle construction from a graph of pairwise homographies.
"""

import logging
from collections import deque

import numpy as np

from .errors import DegenerateGeometryError
from .homography import identity, inverse, trans2d

logger = logging.getLogger(__name__)


def build_linear_chain(bundle, graph):
    """
    Chain ring-ordered pairwise transforms outward from the middle image.
    
    Every image k ends up with the product of the pairwise homographies
    on the path from k to the middle image.
    """
    n = len(bundle.images)
    mid = n // 2
    bundle.place(range(n), mid)
    comp = bundle.components

    comp[mid].homo = identity()
    for k in range(mid + 1, n):
        comp[k].homo = comp[k - 1].homo @ graph.transform(k - 1, k)
    for k in range(mid - 1, -1, -1):
        comp[k].homo = comp[k + 1].homo @ graph.transform(k + 1, k)

    bundle.calc_inverse_homo()
    return bundle


def build_spanning_tree(bundle, graph):
    """
    Place the largest connected subgraph by breadth-first composition.
    
    Each image's homography comes from exactly one parent, so cycles in the
    graph are never composed twice. Images outside the subgraph are left
    out of the bundle.
    """
    members = graph.connected_components()[0]
    identity_idx = members[len(members) // 2]
    bundle.place(members, identity_idx)

    skipped = sorted(set(range(graph.n)) - set(members))
    if skipped:
        logger.warning(f"Images {skipped} are not connected to image {identity_idx}, skipping them")

    homos = {identity_idx: identity()}
    queue = deque([identity_idx])
    while queue:
        parent = queue.popleft()
        for child in sorted(graph.adjacency[parent]):
            if child in homos:
                continue
            homos[child] = homos[parent] @ graph.transform(parent, child)
            logger.debug(f"Image {child} placed through image {parent}")
            queue.append(child)

    for comp in bundle.components:
        comp.homo = homos[comp.idx]

    bundle.calc_inverse_homo()
    return bundle


def straighten(bundle):
    """Shear every homography so the first and last image centres line up horizontally."""
    first, last = bundle.components[0], bundle.components[-1]
    center1 = trans2d(first.homo, np.zeros(2))
    center2 = trans2d(last.homo, np.zeros(2))
    dx = center2[0] - center1[0]
    if abs(dx) < 1e-12:
        raise DegenerateGeometryError(
            "First and last image share a horizontal position",
            indices=(first.idx, last.idx), phase="straighten")

    S = identity()
    S[1, 0] = (center2[1] - center1[1]) / dx
    S_inv = inverse(S, phase="straighten")
    for comp in bundle.components:
        comp.homo = S_inv @ comp.homo

    bundle.calc_inverse_homo()
    return bundle
