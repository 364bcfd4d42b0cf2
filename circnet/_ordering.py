"""
_ordering.py
============
Circular orderings of taxa from a distance matrix.

Two agglomerative methods are provided, selected by
``neighbor_net_cycle(distances, method=...)``:

'agglomerative'
    The NeighborNet agglomeration of Bryant & Moulton.  Clusters of one or
    two nodes are merged by the criterion

        Q(p, q) = (m - 2) D(p, q) - R(p) - R(q)

    where m is the number of clusters and R the summed (cluster-averaged)
    distance to all other clusters.  Merging two pairs replaces three nodes
    by two new ones (a "3-way join") whose distances are a 2/3 : 1/3 blend of
    the contracted rows.  Joins are pushed on a stack and undone in reverse
    to splice the taxa into a circle.

'components'
    The simplified formulation of Bryant & Huson (2023).  Components of size
    one or two are merged under the same criterion generalized to averaged
    distances; every merge adds one edge to a graph whose nodes end with
    degree two.  The ordering is a walk around that graph.

Both return a 1-D array of 1-based taxon ids.  For n <= 3 every ordering is
circular and the identity is returned.

Nodes of the agglomeration live in an arena: integer ids index into parallel
lists for the list links, the cluster partner and the two children.  -1 is
the null id and id 0 is the list header.
"""

import logging
import threading
from typing import List, Optional, Tuple

import numpy as np

from circnet._distances import as_distance_matrix
from circnet._exceptions import ComputationCancelled
from circnet._logging import log_cycle


logger = logging.getLogger(__name__)

ORDERING_METHODS = ("agglomerative", "components")

_NULL = -1


def _check_cancel(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise ComputationCancelled("Circular ordering cancelled")


# ============================================================================ #
# Public entry point
# ============================================================================ #


def neighbor_net_cycle(
    distances,
    method: str = "agglomerative",
    cancel: Optional[threading.Event] = None,
) -> np.ndarray:
    """
    Compute a circular ordering of the taxa.

    Parameters
    ----------
    distances : DistanceMatrix or array_like
        Symmetric (n, n) distances.  Array input is validated.
    method : {'agglomerative', 'components'}
        Which agglomeration to run.
    cancel : threading.Event or None
        Cooperative cancellation flag, checked once per agglomeration step.

    Returns
    -------
    np.ndarray
        int64 array of the n taxon ids (1-based) in circular order.

    Raises
    ------
    ValueError
        If ``method`` is unknown.
    ComputationCancelled
        If ``cancel`` is set during the computation.

    Examples
    --------
    >>> d = [[0, 2, 4, 4], [2, 0, 4, 4], [4, 4, 0, 2], [4, 4, 2, 0]]
    >>> neighbor_net_cycle(d)
    array([1, 3, 4, 2])
    """
    if method not in ORDERING_METHODS:
        raise ValueError(
            f"Unknown ordering method '{method}'. "
            f"Valid options: {', '.join(ORDERING_METHODS)}"
        )

    dm = as_distance_matrix(distances)
    n = dm.ntax
    if n <= 3:
        return np.arange(1, n + 1, dtype=np.int64)

    logger.info(f"neighbor_net_cycle(ntax={n}, method={method!r})")
    if method == "agglomerative":
        cycle = _agglomerative_cycle(dm.values, cancel)
    else:
        cycle = _component_cycle(dm.values, cancel)

    log_cycle(cycle, method)
    return cycle


# ============================================================================ #
# NeighborNet agglomeration (node arena)
# ============================================================================ #


class _NodeArena:
    """
    Scratch state for one agglomeration.

    ``mat`` is the working distance matrix, large enough for every node the
    joins can create: taxa occupy ids 1..n and each 3-way join adds two.
    """

    def __init__(self, dist: np.ndarray):
        n = dist.shape[0]
        size = 3 * n - 5
        self.ntax = n
        self.mat = np.zeros((size, size), dtype=np.float64)
        self.mat[1 : n + 1, 1 : n + 1] = dist

        self.next = [_NULL] * size
        self.prev = [_NULL] * size
        self.nbr = [_NULL] * size
        self.ch1 = [_NULL] * size
        self.ch2 = [_NULL] * size
        self.sx = [0.0] * size
        self.rx = [0.0] * size

        # header -> 1 -> 2 -> ... -> n
        for i in range(n):
            self.next[i] = i + 1
            self.prev[i + 1] = i

        self.joins: List[int] = []

    def active(self) -> List[int]:
        """Ids of the active nodes in list order."""
        nodes = []
        p = self.next[0]
        while p != _NULL:
            nodes.append(p)
            p = self.next[p]
        return nodes

    def is_representative(self, p: int) -> bool:
        """One node per cluster is evaluated: the isolated node or the lower id."""
        return self.nbr[p] == _NULL or self.nbr[p] > p

    def cluster_distance(self, p: int, q: int) -> float:
        """Average distance between the clusters of p and q."""
        D = self.mat
        pn, qn = self.nbr[p], self.nbr[q]
        if pn == _NULL and qn == _NULL:
            return D[p, q]
        if qn == _NULL:
            return (D[p, q] + D[pn, q]) / 2.0
        if pn == _NULL:
            return (D[p, q] + D[p, qn]) / 2.0
        return (D[p, q] + D[p, qn] + D[pn, q] + D[pn, qn]) / 4.0

    # ------------------------------------------------------------------ #
    # Joins                                                               #
    # ------------------------------------------------------------------ #

    def join2way(self, x: int, y: int) -> None:
        self.nbr[x] = y
        self.nbr[y] = x

    def _replace(self, old: int, new: int) -> None:
        nxt, prv = self.next, self.prev
        nxt[new] = nxt[old]
        prv[new] = prv[old]
        if nxt[new] != _NULL:
            prv[nxt[new]] = new
        if prv[new] != _NULL:
            nxt[prv[new]] = new

    def join3way(self, x: int, y: int, z: int, num_nodes: int) -> int:
        """
        Replace x, y, z by two new nodes u = (x, y) and v = (y, z).

        u takes x's place in the list, v takes z's, and y is unlinked.
        Returns u; the caller advances num_nodes by two.
        """
        u = num_nodes + 1
        v = num_nodes + 2
        self.ch1[u], self.ch2[u] = x, y
        self.ch1[v], self.ch2[v] = y, z

        self._replace(x, u)
        self._replace(z, v)

        nxt, prv = self.next, self.prev
        if nxt[y] != _NULL:
            prv[nxt[y]] = prv[y]
        if prv[y] != _NULL:
            nxt[prv[y]] = nxt[y]

        self.nbr[u] = v
        self.nbr[v] = u

        D = self.mat
        act = self.active()
        row_u = (2.0 / 3.0) * D[x, act] + D[y, act] / 3.0
        row_v = (2.0 / 3.0) * D[z, act] + D[y, act] / 3.0
        D[u, act] = row_u
        D[act, u] = row_u
        D[v, act] = row_v
        D[act, v] = row_v
        D[u, u] = 0.0
        D[v, v] = 0.0

        self.joins.append(u)
        return u

    def join4way(self, x2: int, x: int, y: int, y2: int, num_nodes: int) -> int:
        """Two chained 3-way joins; returns the new node count."""
        u = self.join3way(x2, x, y, num_nodes)
        num_nodes += 2
        self.join3way(u, self.nbr[u], y2, num_nodes)
        num_nodes += 2
        return num_nodes

    def compute_rx(self, z: int, cx: int, cy: int) -> float:
        """Summed distance from z, halved towards nodes of other pairs."""
        D = self.mat
        full = (cx, self.nbr[cx], cy, self.nbr[cy])
        rx = 0.0
        for p in self.active():
            if p in full or self.nbr[p] == _NULL:
                rx += D[z, p]
            else:
                rx += D[z, p] / 2.0
        return rx

    # ------------------------------------------------------------------ #
    # Agglomeration and expansion                                         #
    # ------------------------------------------------------------------ #

    def agglomerate(self, cancel: Optional[threading.Event]) -> None:
        D = self.mat
        nbr = self.nbr
        num_nodes = self.ntax
        num_active = self.ntax
        num_clusters = self.ntax

        while num_active > 3:
            _check_cancel(cancel)

            # Two pairs left: pick the 3-way join that keeps the shorter
            # pairing adjacent.
            if num_active == 4 and num_clusters == 2:
                p = self.next[0]
                q = self.next[p] if self.next[p] != nbr[p] else self.next[self.next[p]]
                if D[p, q] + D[nbr[p], nbr[q]] < D[p, nbr[q]] + D[nbr[p], q]:
                    self.join3way(p, q, nbr[q], num_nodes)
                else:
                    self.join3way(p, nbr[q], q, num_nodes)
                break

            active = self.active()

            for p in active:
                self.sx[p] = 0.0
            for a, p in enumerate(active):
                if not self.is_representative(p):
                    continue
                for q in active[a + 1 :]:
                    qn = nbr[q]
                    if qn == _NULL or (qn > q and qn != p):
                        dpq = self.cluster_distance(p, q)
                        self.sx[p] += dpq
                        if nbr[p] != _NULL:
                            self.sx[nbr[p]] += dpq
                        self.sx[q] += dpq
                        if qn != _NULL:
                            self.sx[qn] += dpq

            cx = cy = _NULL
            best = 0.0
            for a, p in enumerate(active):
                if not self.is_representative(p):
                    continue
                for q in active[:a]:
                    if not self.is_representative(q) or nbr[q] == p:
                        continue
                    qpq = (
                        (num_clusters - 2.0) * self.cluster_distance(p, q)
                        - self.sx[p]
                        - self.sx[q]
                    )
                    if cx == _NULL or qpq < best:
                        cx, cy = p, q
                        best = qpq
            if cx == _NULL:
                raise RuntimeError("Internal error: no cluster pair selected")

            # Pick the closest nodes within the two chosen clusters
            x, y = cx, cy
            cxn, cyn = nbr[cx], nbr[cy]
            if cxn != _NULL or cyn != _NULL:
                self.rx[cx] = self.compute_rx(cx, cx, cy)
                if cxn != _NULL:
                    self.rx[cxn] = self.compute_rx(cxn, cx, cy)
                self.rx[cy] = self.compute_rx(cy, cx, cy)
                if cyn != _NULL:
                    self.rx[cyn] = self.compute_rx(cyn, cx, cy)

            m = num_clusters
            if cxn != _NULL:
                m += 1
            if cyn != _NULL:
                m += 1

            rx = self.rx
            best = (m - 2.0) * D[cx, cy] - rx[cx] - rx[cy]
            if cxn != _NULL:
                qpq = (m - 2.0) * D[cxn, cy] - rx[cxn] - rx[cy]
                if qpq < best:
                    x, y, best = cxn, cy, qpq
            if cyn != _NULL:
                qpq = (m - 2.0) * D[cx, cyn] - rx[cx] - rx[cyn]
                if qpq < best:
                    x, y, best = cx, cyn, qpq
            if cxn != _NULL and cyn != _NULL:
                qpq = (m - 2.0) * D[cxn, cyn] - rx[cxn] - rx[cyn]
                if qpq < best:
                    x, y = cxn, cyn

            if nbr[x] == _NULL and nbr[y] == _NULL:
                self.join2way(x, y)
                num_clusters -= 1
            elif nbr[x] == _NULL:
                self.join3way(x, y, nbr[y], num_nodes)
                num_nodes += 2
                num_active -= 1
                num_clusters -= 1
            elif nbr[y] == _NULL or num_active == 4:
                self.join3way(y, x, nbr[x], num_nodes)
                num_nodes += 2
                num_active -= 1
                num_clusters -= 1
            else:
                num_nodes = self.join4way(nbr[x], x, y, nbr[y], num_nodes)
                num_active -= 2
                num_clusters -= 1

    def expand(self, cancel: Optional[threading.Event]) -> np.ndarray:
        nxt, prv = self.next, self.prev

        # Close the last three active nodes into a circle
        x = nxt[0]
        y = nxt[x]
        z = nxt[y]
        nxt[z] = x
        prv[x] = z

        while self.joins:
            _check_cancel(cancel)
            u = self.joins.pop()
            v = self.nbr[u]
            x = self.ch1[u]
            y = self.ch2[u]
            z = self.ch2[v]
            if v != nxt[u]:
                u, v = v, u
                x, z = z, x

            prv[x] = prv[u]
            nxt[prv[x]] = x
            nxt[x] = y
            prv[y] = x
            nxt[y] = z
            prv[z] = y
            nxt[z] = nxt[v]
            prv[nxt[z]] = z

        while x != 1:
            x = nxt[x]

        cycle = np.empty(self.ntax, dtype=np.int64)
        a = x
        for k in range(self.ntax):
            cycle[k] = a
            a = nxt[a]
        return cycle


def _agglomerative_cycle(
    dist: np.ndarray, cancel: Optional[threading.Event] = None
) -> np.ndarray:
    arena = _NodeArena(dist)
    arena.agglomerate(cancel)
    logger.debug(f"  agglomeration finished with {len(arena.joins)} joins")
    return arena.expand(cancel)


# ============================================================================ #
# Component agglomeration (Bryant & Huson 2023)
# ============================================================================ #


def _member_index(components: List[Tuple[int, ...]]) -> Tuple[np.ndarray, np.ndarray]:
    """First and last member of each component; equal for singletons."""
    a = np.array([c[0] for c in components], dtype=np.int64)
    b = np.array([c[-1] for c in components], dtype=np.int64)
    return a, b


def _component_averages(D: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Average distances between every pair of components, in one pass.

    Components have one or two members.  A singleton is listed twice
    (``a[i] == b[i]``), so the four-way sum over member pairs divided by 4
    is the average for every combination of sizes.

    Returns
    -------
    np.ndarray
        Symmetric (m, m) averages with a zero diagonal.
    """
    avg = ((D[np.ix_(a, a)] + D[np.ix_(a, b)]) + (D[np.ix_(b, a)] + D[np.ix_(b, b)])) / 4.0
    np.fill_diagonal(avg, 0.0)
    return avg


def _select_closest_pair(
    components: List[Tuple[int, ...]], D: np.ndarray, a: np.ndarray, b: np.ndarray
) -> Tuple[int, int]:
    m = len(components)
    if m == 2:
        # The smaller component still goes first, so a (pair, singleton)
        # ending is handled as 1-vs-2.
        if len(components[0]) > len(components[1]):
            return 1, 0
        return 0, 1

    avg = _component_averages(D, a, b)
    R = avg.sum(axis=1)
    adjusted = (m - 2) * avg - R[:, None] - R[None, :]
    # Row-major argmin over i < j keeps the first pair on ties
    adjusted[np.tril_indices(m)] = np.inf
    ip, iq = np.unravel_index(int(np.argmin(adjusted)), adjusted.shape)
    if not np.isfinite(adjusted[ip, iq]):
        raise RuntimeError("Internal error: no component pair selected")

    ip, iq = int(ip), int(iq)
    if len(components[ip]) > len(components[iq]):
        ip, iq = iq, ip
    return ip, iq


def _others_mask(m: int, ip: int, iq: int) -> np.ndarray:
    keep = np.ones(m, dtype=bool)
    keep[[ip, iq]] = False
    return keep


def _average_to_others(D, t, a, b, keep) -> float:
    """Summed average distance from taxon t to the components selected by ``keep``."""
    return float(((D[t, a[keep]] + D[t, b[keep]]) / 2.0).sum())


def _select_closest_1vs2(ip, iq, D, components, a, b) -> int:
    (p,) = components[ip]
    q1, q2 = components[iq]
    m = len(components)
    keep = _others_mask(m, ip, iq)

    pR = D[q1, p] + D[q2, p] + _average_to_others(D, p, a, b, keep)
    q1R = D[q1, q2] + D[q1, p] + _average_to_others(D, q1, a, b, keep)
    q2R = D[q1, q2] + D[q2, p] + _average_to_others(D, q2, a, b, keep)

    if (m - 1) * D[q1, p] - q1R - pR <= (m - 1) * D[q2, p] - q2R - pR:
        return q1
    return q2


def _select_closest_2vs2(ip, iq, D, components, a, b) -> Tuple[int, int]:
    p1, p2 = components[ip]
    q1, q2 = components[iq]
    m = len(components)
    keep = _others_mask(m, ip, iq)

    p1R = D[q1, p1] + D[q2, p1] + _average_to_others(D, p1, a, b, keep)
    p2R = D[q1, p2] + D[q2, p2] + _average_to_others(D, p2, a, b, keep)
    q1R = D[p1, q1] + D[p2, q1] + _average_to_others(D, q1, a, b, keep)
    q2R = D[p1, q2] + D[p2, q2] + _average_to_others(D, q2, a, b, keep)

    candidates = [
        (m * D[p1, q1] - p1R - q1R, (p1, q1)),
        (m * D[p2, q1] - p2R - q1R, (p2, q1)),
        (m * D[p1, q2] - p1R - q2R, (p1, q2)),
        (m * D[p2, q2] - p2R - q2R, (p2, q2)),
    ]
    best_score, best_pair = candidates[0]
    for score, pq in candidates[1:]:
        if score < best_score:
            best_score, best_pair = score, pq
    return best_pair


def _other_member(component: Tuple[int, int], p: int) -> int:
    return component[0] if component[0] != p else component[1]


def _component_cycle(
    dist: np.ndarray, cancel: Optional[threading.Event] = None
) -> np.ndarray:
    n = dist.shape[0]

    # 1-based working copy; row/column 0 unused
    D = np.zeros((n + 1, n + 1), dtype=np.float64)
    D[1:, 1:] = dist

    adjacency = {t: [] for t in range(1, n + 1)}
    components: List[Tuple[int, ...]] = [(t,) for t in range(1, n + 1)]

    def add_edge(a, b):
        adjacency[a].append(b)
        adjacency[b].append(a)

    while len(components) >= 2:
        _check_cancel(cancel)
        heads, tails = _member_index(components)
        ip, iq = _select_closest_pair(components, D, heads, tails)
        P, Q = components[ip], components[iq]
        keep = _others_mask(len(components), ip, iq)
        rest = np.unique(np.concatenate([heads[keep], tails[keep]]))

        if len(P) == 1 and len(Q) == 1:
            p, q = P[0], Q[0]
            add_edge(p, q)
            merged = (p, q)

        elif len(P) == 1 and len(Q) == 2:
            p = P[0]
            q = _select_closest_1vs2(ip, iq, D, components, heads, tails)
            qb = _other_member(Q, q)

            D[p, qb] = D[qb, p] = (D[p, qb] + D[q, qb] + D[p, q]) / 3.0
            new_p = (2.0 * D[p, rest] + D[q, rest]) / 3.0
            new_qb = (2.0 * D[qb, rest] + D[q, rest]) / 3.0
            D[p, rest] = D[rest, p] = new_p
            D[qb, rest] = D[rest, qb] = new_qb

            add_edge(p, q)
            merged = (p, qb)

        elif len(P) == 2 and len(Q) == 2:
            p, q = _select_closest_2vs2(ip, iq, D, components, heads, tails)
            pb = _other_member(P, p)
            qb = _other_member(Q, q)

            D[pb, qb] = D[qb, pb] = (
                D[pb, p] + D[pb, q] + D[pb, qb] + D[p, q] + D[p, qb] + D[q, qb]
            ) / 6.0
            new_pb = D[pb, rest] / 2.0 + D[p, rest] / 3.0 + D[q, rest] / 6.0
            new_qb = D[p, rest] / 6.0 + D[q, rest] / 3.0 + D[qb, rest] / 2.0
            D[pb, rest] = D[rest, pb] = new_pb
            D[qb, rest] = D[rest, qb] = new_qb

            add_edge(p, q)
            merged = (pb, qb)

        else:
            raise RuntimeError(
                f"Internal error: |P|={len(P)} and |Q|={len(Q)}"
            )

        components[ip] = merged
        del components[iq]

    p, q = components[0]
    add_edge(p, q)

    # Every node now has degree two; walk the circle from taxon 1
    cycle = [1]
    seen = {1}
    v = 1
    while len(cycle) < n:
        for w in adjacency[v]:
            if w not in seen:
                v = w
                break
        else:
            raise RuntimeError("Internal error: component graph is not a cycle")
        cycle.append(v)
        seen.add(v)
    return np.array(cycle, dtype=np.int64)
