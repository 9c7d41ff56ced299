"""
Fabric export — the finished, partition-annotated subnet as portable JSON.

One file per subnet: <out-dir>/IB-<subnet>-fabric.json. Ids are the same
canonical node ids and link ids the model uses, so paths and
back-references can be followed without any other file.
"""

from __future__ import annotations
from pathlib import Path as FsPath
import json
import logging

from .models import Fabric, Node, Edge, PhysicalLink

logger = logging.getLogger("fabtrace.export")


def fabric_filename(subnet: str) -> str:
    return f"IB-{subnet}-fabric.json"


def _edge_to_dict(edge: Edge, node: Node) -> dict:
    return {
        "dest": edge.dest,
        "gbits": edge.gbits,
        "links": [node.ports[idx].id for idx in edge.link_ports
                  if node.ports[idx] is not None],
        "reverse_edge": list(edge.reverse_edge) if edge.reverse_edge else None,
        "partitions": sorted(edge.partitions),
    }


def _node_to_dict(node: Node) -> dict:
    return {
        "id": node.id,
        "lid": node.lid,
        "type": node.type.value,
        "hostname": node.hostname,
        "description": node.description,
        "main_partition": node.main_partition,
        "partitions": sorted(node.partitions),
        "subnodes": [_node_to_dict(sub) for sub in node.subnodes.values()],
        "edges": [_edge_to_dict(e, node) for e in node.edges.values()],
    }


def _link_to_dict(link: PhysicalLink) -> dict:
    return {
        "id": link.id,
        "ports": list(link.ports),
        "parent": link.parent,
        "dest": link.dest,
        "width": link.width,
        "speed": link.speed,
        "gbits": link.gbits,
        "description": link.description,
        "other_link": link.other_link,
        "partitions": sorted(link.partitions),
    }


def fabric_to_dict(fabric: Fabric) -> dict:
    return {
        "subnet": fabric.subnet,
        "hwloc_dir": fabric.hwloc_dir,
        "partitions": [
            {"index": i, "name": p.name, "nodes": p.nodes}
            for i, p in enumerate(fabric.partitions)
        ],
        "nodes": [_node_to_dict(n) for n in fabric.nodes.values()],
        "links": [_link_to_dict(l) for l in sorted(fabric.links.values(),
                                                   key=lambda l: l.id)],
        "paths": [
            {"source": p.source, "dest": p.dest, "links": p.links}
            for p in fabric.iter_paths()
        ],
    }


def write_fabric_json(fabric: Fabric, out_dir: str | FsPath) -> FsPath:
    """Write the subnet file and return its path."""
    path = FsPath(out_dir) / fabric_filename(fabric.subnet)
    with open(path, "w") as f:
        json.dump(fabric_to_dict(fabric), f, indent=2)
    logger.info(f"Wrote {path}")
    return path
