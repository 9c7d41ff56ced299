"""
Path Reconstruction Engine — replay LFT forwarding hop by hop.

There is no central route computation to ask. Every switch's linear
forwarding table was dumped independently; the end-to-end path only
exists as the chain of local decisions, so we follow it the way the
hardware does:

    src ──first uplink──▶ switch A
                            │ LFT[A][dst] = port 7
                            ▼
                          switch B
                            │ LFT[B][dst] = port 2
                            ▼
                           dst                    → COMPLETE

A walk stops early when a transit switch has no table (NO_TABLE), its
table has no entry for the destination (NO_ENTRY), the egress port has
no discovered cable (DEAD_PORT), or a node comes round twice (LOOP).
Those pairs get no Path. That is not an error, just "no known route".

The first hop is the first link of the source's first edge. With a
multi-homed host that choice is arbitrary but stable, and the result is
best-effort: not guaranteed shortest, not guaranteed unique.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Optional
import logging

from .models import (
    Node, RoutingTable, Path, PathSource, PathStatus,
)

logger = logging.getLogger("fabtrace.walker")


# ============================================================
# Single Walk
# ============================================================

@dataclass
class PathAttempt:
    """Outcome of one src → dst walk, complete or not."""
    source: str
    dest: str
    status: PathStatus = PathStatus.COMPLETE
    links: list[int] = field(default_factory=list)
    nodes: list[str] = field(default_factory=list)   # visited, src first
    stalled_at: Optional[str] = None                  # node where the walk stopped
    detail: str = ""

    @property
    def is_complete(self) -> bool:
        return self.status == PathStatus.COMPLETE

    def to_path(self) -> Path:
        return Path(source=self.source, dest=self.dest, links=list(self.links))


def trace_path(nodes: dict[str, Node], routes: dict[str, RoutingTable],
               src: Node, dst: Node) -> PathAttempt:
    """Walk from src to dst through the forwarding tables."""
    attempt = PathAttempt(source=src.id, dest=dst.id, nodes=[src.id])

    link = src.first_link()
    if link is None:
        attempt.status = PathStatus.DEAD_PORT
        attempt.stalled_at = src.id
        attempt.detail = "source has no uplink"
        return attempt

    visited = {src.id}
    while True:
        attempt.links.append(link.id)
        current = nodes.get(link.dest)
        if current is None:
            attempt.status = PathStatus.DEAD_PORT
            attempt.stalled_at = link.parent
            attempt.detail = f"port {link.src_port} leads to unknown node {link.dest}"
            return attempt
        if current.id in visited:
            attempt.status = PathStatus.LOOP
            attempt.stalled_at = current.id
            attempt.detail = f"{current.id} reached twice"
            return attempt
        visited.add(current.id)
        attempt.nodes.append(current.id)

        if current is dst:
            return attempt

        table = routes.get(current.id)
        if table is None:
            attempt.status = PathStatus.NO_TABLE
            attempt.stalled_at = current.id
            attempt.detail = f"no forwarding table for {current.hostname or current.id}"
            return attempt

        port = table.egress_port(dst.id)
        if port is None:
            attempt.status = PathStatus.NO_ENTRY
            attempt.stalled_at = current.id
            attempt.detail = (f"{current.hostname or current.id} has no entry "
                              f"for {dst.hostname or dst.id}")
            return attempt

        link = current.link_at(port)
        if link is None:
            attempt.status = PathStatus.DEAD_PORT
            attempt.stalled_at = current.id
            attempt.detail = f"egress port {port} on {current.id} has no link"
            return attempt


# ============================================================
# All Pairs
# ============================================================

PathCallback = Callable[[PathAttempt], None]


class PathWalker:
    """
    Reconstruct paths for every ordered pair of hosts in one subnet.

    Usage:
        walker = PathWalker(fabric.nodes, fabric.routes)
        fabric.paths = walker.walk()
        walker.status_counts  # {PathStatus.COMPLETE: 12, PathStatus.NO_ENTRY: 2}

    Pairs are independent of each other; they run sequentially here.
    """

    def __init__(self, nodes: dict[str, Node], routes: dict[str, RoutingTable],
                 on_path: Optional[PathCallback] = None):
        self.nodes = nodes
        self.routes = routes
        self.on_path = on_path
        self.status_counts: dict[PathStatus, int] = {}

    def _record(self, attempt: PathAttempt) -> None:
        self.status_counts[attempt.status] = self.status_counts.get(attempt.status, 0) + 1
        if not attempt.is_complete:
            logger.debug(f"{attempt.source} → {attempt.dest}: "
                         f"{attempt.status.value} ({attempt.detail})")
        if self.on_path is not None:
            try:
                self.on_path(attempt)
            except Exception as e:
                logger.debug(f"Path callback error: {e}")

    def walk(self) -> dict[str, PathSource]:
        self.status_counts.clear()
        paths: dict[str, PathSource] = {}
        hosts = [n for n in self.nodes.values() if n.is_host]

        for src in hosts:
            if not src.edges:
                continue
            source = PathSource(source=src.id)
            paths[src.id] = source

            for dst in hosts:
                if dst is src:
                    continue
                attempt = trace_path(self.nodes, self.routes, src, dst)
                self._record(attempt)
                if attempt.is_complete:
                    source.dest[dst.id] = attempt.to_path()

        complete = self.status_counts.get(PathStatus.COMPLETE, 0)
        missing = sum(self.status_counts.values()) - complete
        logger.info(f"{complete} paths reconstructed, {missing} without a route")
        return paths


def build_paths(nodes: dict[str, Node], routes: dict[str, RoutingTable]
                ) -> dict[str, PathSource]:
    """Every ordered host pair with a complete forwarding chain."""
    return PathWalker(nodes, routes).walk()
