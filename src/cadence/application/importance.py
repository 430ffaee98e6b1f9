"""
Importance scoring over the document link graph.

Builds a weighted directed graph from each document's outgoing links and
computes a PageRank-style stationary score per document. Scores are only
meaningful relative to each other within one pass.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from cadence.domain.constants import (
    CONVERGENCE_TOLERANCE,
    DAMPING_FACTOR,
    IMPORTANCE_SCALE,
    MAX_RANK_ITERATIONS,
)
from cadence.domain.models import Document, LinkStat

logger = logging.getLogger(__name__)


@dataclass
class LinkGraph:
    """Weighted link graph rebuilt from scratch on every pass."""

    edges: dict[str, dict[str, int]] = field(default_factory=lambda: defaultdict(dict))
    incoming: dict[str, list[LinkStat]] = field(default_factory=lambda: defaultdict(list))

    def add_link(self, source: str, target: str, weight: int) -> None:
        if source == target or weight <= 0:
            return
        self.edges[source][target] = self.edges[source].get(target, 0) + weight
        self.incoming[target].append(LinkStat(source_path=source, link_count=weight))

    def iter_edges(self) -> Iterable[tuple[str, str, int]]:
        for source, targets in self.edges.items():
            for target, weight in targets.items():
                yield source, target, weight

    @property
    def edge_count(self) -> int:
        return sum(len(t) for t in self.edges.values())


def build_link_graph(documents: Iterable[Document]) -> LinkGraph:
    """
    Build the link graph for a set of documents.

    Only links whose target is another document in the set contribute;
    self-links and links to attachments or missing notes are dropped.
    """
    documents = list(documents)
    known = {doc.path for doc in documents}
    graph = LinkGraph()

    for doc in documents:
        for target, count in doc.links.items():
            if target not in known:
                continue
            try:
                graph.add_link(doc.path, target, int(count))
            except (TypeError, ValueError):
                logger.warning(f"Ignoring bad link count {count!r} from {doc.path} to {target}")

    return graph


def compute_importance(
    edges: Iterable[tuple[str, str, float]],
    damping: float = DAMPING_FACTOR,
    tolerance: float = CONVERGENCE_TOLERANCE,
    max_iterations: int = MAX_RANK_ITERATIONS,
    scale: float = IMPORTANCE_SCALE,
) -> dict[str, float]:
    """
    Compute PageRank scores for every node that appears in `edges`.

    Args:
        edges: (source, target, weight) triples. Repeated pairs are summed.
        damping: Probability of following a link rather than jumping.
        tolerance: Stop once the largest per-node change drops below this.
        max_iterations: Hard cap on power iterations.
        scale: Multiplier applied to the stationary probabilities.

    Returns:
        Mapping node -> non-negative score. Rank mass of nodes without
        outgoing links is spread uniformly over all nodes.
    """
    out_weights: dict[str, dict[str, float]] = defaultdict(dict)
    nodes: dict[str, None] = {}

    for source, target, weight in edges:
        nodes.setdefault(source)
        nodes.setdefault(target)
        if weight <= 0 or source == target:
            continue
        out_weights[source][target] = out_weights[source].get(target, 0.0) + weight

    n = len(nodes)
    if n == 0:
        return {}

    out_totals = {src: sum(targets.values()) for src, targets in out_weights.items()}
    inverse = 1.0 / n
    rank = {node: inverse for node in nodes}

    for iteration in range(max_iterations):
        leak = sum(rank[node] for node in nodes if node not in out_totals)
        incoming: dict[str, float] = dict.fromkeys(nodes, 0.0)
        for source, targets in out_weights.items():
            share = rank[source] / out_totals[source]
            for target, weight in targets.items():
                incoming[target] += share * weight

        new_rank = {
            node: damping * (incoming[node] + leak * inverse) + (1.0 - damping) * inverse
            for node in nodes
        }
        delta = max(abs(new_rank[node] - rank[node]) for node in nodes)
        rank = new_rank
        if delta < tolerance:
            logger.debug(f"PageRank converged after {iteration + 1} iterations")
            break
    else:
        logger.debug(f"PageRank stopped at the {max_iterations} iteration cap")

    return {node: value * scale for node, value in rank.items()}


def rank_documents(documents: Iterable[Document]) -> tuple[LinkGraph, dict[str, float]]:
    """Build the link graph for `documents` and score it."""
    graph = build_link_graph(documents)
    return graph, compute_importance(graph.iter_edges())
