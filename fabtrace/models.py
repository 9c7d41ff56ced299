"""
InfiniBand Fabric Extractor — Core Data Models
One subnet at a time. Ports, links, edges, paths.

The question for every host pair:
  Which switch holds the route? → Which port does it forward on? → Where does that cable land?
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import re


# ============================================================
# Identity
# ============================================================

class NodeType(Enum):
    HOST = "host"                       # CA — channel adapter
    SWITCH = "switch"                   # SW


NODE_TYPE_CODES: dict[str, NodeType] = {
    "CA": NodeType.HOST,
    "SW": NodeType.SWITCH,
}


def canonical_id(guid: str) -> str:
    """Regroup a 16-hex-digit GUID as xxxx:xxxx:xxxx:xxxx."""
    guid = guid.lower()
    if guid.startswith("0x"):
        guid = guid[2:]
    return ":".join(guid[i:i + 4] for i in range(0, 16, 4))


_HOSTNAME_CHARS = re.compile(r"[a-z0-9-]*")
_PARTITION_CHARS = re.compile(r"[A-Za-z-]*")


def extract_hostname(description: str) -> str:
    """
    Hostname is the leading run of [a-z0-9-] in the node description,
    after at most one opening quote. ibnetdiscover quotes descriptions
    ('node-001 HCA-1'), hence the quote skip.
    """
    text = description[1:] if description.startswith("'") else description
    return _HOSTNAME_CHARS.match(text).group(0)


def extract_partition_name(hostname: str) -> str:
    """Leading run of letters and hyphens, trailing hyphens dropped."""
    return _PARTITION_CHARS.match(hostname).group(0).rstrip("-")


# ============================================================
# Link Speed — signaling rate × encoding × lanes
# ============================================================

class LinkSpeed(Enum):
    SDR = "SDR"
    DDR = "DDR"
    QDR = "QDR"
    FDR = "FDR"
    FDR10 = "FDR10"
    EDR = "EDR"


# code → (lane rate in Gbit/s, encoding efficiency)
SPEED_TABLE: dict[LinkSpeed, tuple[float, float]] = {
    LinkSpeed.SDR:   (2.5, 8.0 / 10),
    LinkSpeed.DDR:   (5.0, 8.0 / 10),
    LinkSpeed.QDR:   (10.0, 8.0 / 10),
    LinkSpeed.FDR:   (14.0625, 64.0 / 66),
    LinkSpeed.FDR10: (10.0, 64.0 / 66),
    LinkSpeed.EDR:   (25.0, 64.0 / 66),
}

# Returned for speed codes outside the table. Not a physical value.
UNKNOWN_SPEED_GBITS = 1.0

_WIDTH_PATTERN = re.compile(r"^(\d*)x")


def lane_count(width: str) -> int:
    """'4x' → 4. Anything without a leading count before 'x' → 0."""
    m = _WIDTH_PATTERN.match(width or "")
    if not m or not m.group(1):
        return 0
    return int(m.group(1))


def compute_gbits(speed: str, width: str) -> float:
    """Effective data bandwidth of one port-to-port link, in Gbit/s."""
    try:
        rate, encoding = SPEED_TABLE[LinkSpeed(speed)]
    except ValueError:
        return UNKNOWN_SPEED_GBITS
    return lane_count(width) * (rate * encoding)


# ============================================================
# Physical Link — one cable, one direction
# ============================================================

@dataclass
class PhysicalLink:
    """
    One port-to-port connection as seen from its source port.
    The reverse direction is a separate PhysicalLink owned by the peer node.
    """
    id: int                             # creation order within the subnet
    ports: tuple[int, int]              # (source port, dest port), 1-based
    parent: str                         # source node id
    dest: str                           # destination node id
    width: str = ""                     # "4x"
    speed: str = ""                     # "QDR", "EDR", ...
    gbits: float = 0.0
    description: str = ""

    # Lookup, not ownership: id of the link on the peer port, if resolved
    other_link: Optional[int] = None
    partitions: set[int] = field(default_factory=set)

    @property
    def src_port(self) -> int:
        return self.ports[0]

    @property
    def dest_port(self) -> int:
        return self.ports[1]

    @property
    def edge_key(self) -> tuple[str, str]:
        return (self.parent, self.dest)


# ============================================================
# Edge — logical adjacency, possibly multi-rail
# ============================================================

@dataclass
class Edge:
    source: str
    dest: str
    gbits: float = 0.0                  # sum over constituent links
    link_ports: list[int] = field(default_factory=list)  # indices into source.ports
    reverse_edge: Optional[tuple[str, str]] = None       # (dest, source) once resolved
    partitions: set[int] = field(default_factory=set)

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.dest)

    @property
    def width(self) -> int:
        """Number of physical links aggregated in this edge."""
        return len(self.link_ports)


# ============================================================
# Node — host or switch
# ============================================================

@dataclass
class Node:
    id: str                             # canonical xxxx:xxxx:xxxx:xxxx
    lid: int
    type: NodeType
    description: str = ""
    hostname: str = ""
    subnodes: dict[str, Node] = field(default_factory=dict)
    main_partition: int = -1
    partitions: set[int] = field(default_factory=set)

    edges: dict[str, Edge] = field(default_factory=dict)       # dest id → Edge
    ports: list[Optional[PhysicalLink]] = field(default_factory=list)

    @property
    def is_host(self) -> bool:
        return self.type == NodeType.HOST

    def link_at(self, port: int) -> Optional[PhysicalLink]:
        """Link leaving through 1-based `port`, or None if never seen."""
        if port < 1 or port > len(self.ports):
            return None
        return self.ports[port - 1]

    def links(self) -> list[PhysicalLink]:
        return [link for link in self.ports if link is not None]

    def first_link(self) -> Optional[PhysicalLink]:
        """
        First link of the first edge, in insertion order. Deterministic,
        but arbitrary when a host has several uplinks.
        """
        for edge in self.edges.values():
            if edge.link_ports:
                return self.ports[edge.link_ports[0]]
        return None


# ============================================================
# Routing — linear forwarding tables
# ============================================================

class DestinationKind(Enum):
    CHANNEL_ADAPTER = "Channel Adapter"
    SWITCH = "Switch"


@dataclass
class RouteEntry:
    """One LFT line: traffic for `dest` leaves through `port`."""
    dest: str                           # canonical id of the destination port guid
    port: int
    dest_lid: int = 0
    kind: DestinationKind = DestinationKind.CHANNEL_ADAPTER


@dataclass
class RoutingTable:
    switch: str                         # canonical id of the owning switch
    entries: dict[str, RouteEntry] = field(default_factory=dict)

    def egress_port(self, dest: str) -> Optional[int]:
        entry = self.entries.get(dest)
        return entry.port if entry else None


# ============================================================
# Paths
# ============================================================

class PathStatus(Enum):
    COMPLETE = "complete"
    NO_TABLE = "no-table"               # a transit switch has no LFT dump
    NO_ENTRY = "no-entry"               # LFT has no entry for the destination
    DEAD_PORT = "dead-port"             # egress port with no discovered link
    LOOP = "loop"                       # forwarding revisits a node


@dataclass
class Path:
    source: str
    dest: str
    links: list[int] = field(default_factory=list)  # PhysicalLink ids, in order

    @property
    def hops(self) -> int:
        return len(self.links)


@dataclass
class PathSource:
    """All reconstructed paths leaving one host, keyed by destination id."""
    source: str
    dest: dict[str, Path] = field(default_factory=dict)


# ============================================================
# Partitions
# ============================================================

@dataclass
class Partition:
    name: str
    nodes: list[str] = field(default_factory=list)   # member host ids


# ============================================================
# Fabric — everything one subnet owns
# ============================================================

@dataclass
class Fabric:
    """
    Per-subnet arena. Nodes own their edges and port-indexed links;
    `links` indexes the same PhysicalLink objects by id so back-references
    (other_link, reverse_edge) stay plain ids.
    """
    subnet: str
    nodes: dict[str, Node] = field(default_factory=dict)
    links: dict[int, PhysicalLink] = field(default_factory=dict)
    routes: dict[str, RoutingTable] = field(default_factory=dict)
    paths: dict[str, PathSource] = field(default_factory=dict)
    partitions: list[Partition] = field(default_factory=list)
    hwloc_dir: Optional[str] = None

    def node(self, node_id: str) -> Optional[Node]:
        return self.nodes.get(node_id)

    def link(self, link_id: Optional[int]) -> Optional[PhysicalLink]:
        if link_id is None:
            return None
        return self.links.get(link_id)

    def edge(self, key: Optional[tuple[str, str]]) -> Optional[Edge]:
        if key is None:
            return None
        node = self.nodes.get(key[0])
        return node.edges.get(key[1]) if node else None

    def hosts(self) -> list[Node]:
        return [n for n in self.nodes.values() if n.is_host]

    def switches(self) -> list[Node]:
        return [n for n in self.nodes.values() if not n.is_host]

    def path(self, source: str, dest: str) -> Optional[Path]:
        src = self.paths.get(source)
        return src.dest.get(dest) if src else None

    def iter_paths(self):
        for src in self.paths.values():
            yield from src.dest.values()

    @property
    def path_count(self) -> int:
        return sum(len(src.dest) for src in self.paths.values())
