"""
Partition Detector & Propagator.

Hosts are grouped by the alphabetic stem of their hostname
(node-0012 → "node", gpu-a-7 → "gpu-a"). Every host gets exactly one main
partition. Propagation then marks the links, edges and nodes that carry
intra-partition traffic, which gives each partition the minimal
sub-fabric its own paths actually use.
"""

from __future__ import annotations
import logging

from .models import Fabric, Node, Partition, PhysicalLink, extract_partition_name

logger = logging.getLogger("fabtrace.partitions")


def find_partitions(nodes: dict[str, Node]) -> list[Partition]:
    """
    Group hosts by partition name, in order of first appearance, and set
    each host's main_partition. Hosts whose name has no alphabetic stem
    share the partition named "".
    """
    partitions: list[Partition] = []
    index: dict[str, int] = {}

    for node in nodes.values():
        if not node.is_host:
            continue
        name = extract_partition_name(node.hostname)
        idx = index.get(name)
        if idx is None:
            idx = len(partitions)
            index[name] = idx
            partitions.append(Partition(name=name))
        partitions[idx].nodes.append(node.id)
        node.main_partition = idx

    logger.info(f"{len(partitions)} partitions found")
    for p in partitions:
        logger.debug(f"\t'{p.name}'")
    return partitions


def _mark(fabric: Fabric, link: PhysicalLink, partition: int) -> None:
    link.partitions.add(partition)
    parent = fabric.nodes.get(link.parent)
    if parent is not None:
        parent.partitions.add(partition)
        edge = parent.edges.get(link.dest)
        if edge is not None:
            edge.partitions.add(partition)


def set_partitions(fabric: Fabric) -> list[Partition]:
    """
    Detect partitions, then mark every link on a path between two hosts of
    the same partition (and the link coming back the other way) with it,
    along with the link's edge and source node.
    """
    fabric.partitions = find_partitions(fabric.nodes)

    for node in fabric.nodes.values():
        node.partitions = {node.main_partition} if node.main_partition != -1 else set()
        for edge in node.edges.values():
            edge.partitions = set()
    for link in fabric.links.values():
        link.partitions = set()

    for path in fabric.iter_paths():
        src = fabric.nodes[path.source]
        dst = fabric.nodes[path.dest]
        if src.main_partition != dst.main_partition:
            continue
        partition = src.main_partition
        for link_id in path.links:
            link = fabric.links[link_id]
            _mark(fabric, link, partition)
            other = fabric.link(link.other_link)
            if other is not None:
                _mark(fabric, other, partition)

    return fabric.partitions
