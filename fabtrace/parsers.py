"""
InfiniBand Fabric Extractor — Record Parsers

Raw dump lines → record dataclasses.

Two sources per subnet:
  ib-subnet-<subnet>.txt                   ibnetdiscover -p port listing
  ibroutes-<subnet>/ibroute-<subnet>-N.txt  one LFT dump per switch

Every parser function:
  - Takes one raw line (str)
  - Returns a record dataclass or None
  - Never raises; a None is captured by diagnostics as a non-match

Parser dispatch:
  get_parser(record_kind) → callable
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
import re

from .models import NODE_TYPE_CODES, NodeType, DestinationKind, canonical_id


# ============================================================
# File Naming
# ============================================================

SUBNET_FILE_PATTERN = re.compile(r"^ib-subnet-([0-9a-fA-F:]{19})\.txt$")
ROUTE_FILE_PATTERN = re.compile(r"^ibroute-[0-9a-fA-F:]{19}-([0-9]*)\.txt$")


def subnet_from_filename(filename: str) -> Optional[str]:
    """'ib-subnet-fe80:0000:0000:0000.txt' → 'fe80:0000:0000:0000'."""
    m = SUBNET_FILE_PATTERN.match(filename)
    return m.group(1) if m else None


def route_dirname(subnet: str) -> str:
    return f"ibroutes-{subnet}"


def route_file_index(filename: str) -> Optional[int]:
    """'ibroute-<subnet>-12.txt' → 12. An empty index sorts first as 0."""
    m = ROUTE_FILE_PATTERN.match(filename)
    if not m:
        return None
    return int(m.group(1)) if m.group(1) else 0


# ============================================================
# Records
# ============================================================

@dataclass
class LinkRecord:
    """An active port: both ends known."""
    src_type: NodeType
    src_lid: int
    src_port: int
    src_guid: str
    width: str
    speed: str
    dest_type: NodeType
    dest_lid: int
    dest_port: int
    dest_guid: str
    description: str = ""
    src_desc: str = ""
    dest_desc: str = ""

    @property
    def src_id(self) -> str:
        return canonical_id(self.src_guid)

    @property
    def dest_id(self) -> str:
        return canonical_id(self.dest_guid)


@dataclass
class PortRecord:
    """A port with no peer. Confirms the port exists, nothing more."""
    type: NodeType
    lid: int
    port: int
    guid: str


@dataclass
class RouteHeader:
    """First line of an LFT dump — identifies the switch."""
    guid: str

    @property
    def switch_id(self) -> str:
        return canonical_id(self.guid)


@dataclass
class RouteRecord:
    dest_lid: int
    port: int
    kind: DestinationKind
    dest_guid: str

    @property
    def dest_id(self) -> str:
        return canonical_id(self.dest_guid)


# ============================================================
# Discovery Parser
# ============================================================

_DR_LINE = re.compile(r"^DR")

_LINK_LINE = re.compile(
    r"^(CA|SW)\s+"                      # source type
    r"(\d+)\s+"                         # source lid
    r"(\d+)\s+"                         # source port
    r"0x([0-9a-f]{16})\s+"              # source guid
    r"(\d+x)\s"                         # width
    r"(\S*)\s+"                         # speed
    r"-\s+"
    r"(CA|SW)\s+"                       # dest type
    r"(\d+)\s+"                         # dest lid
    r"(\d+)\s+"                         # dest port
    r"0x([0-9a-f]{16})\s+"              # dest guid
    r"\(\s*(.*)\s*\)"                   # description
)

_NOLINK_LINE = re.compile(
    r"^(CA|SW)\s+"
    r"(\d+)\s+"
    r"(\d+)\s+"
    r"0x([0-9a-f]{16})\s+"
)

# Greedy on the left: splits on the last " - "
_DESC_SPLIT = re.compile(r"(.*)\s+-\s+(.*)")


def split_description(description: str) -> tuple[str, str]:
    """
    "'node-001 HCA-1' - 'sw-leaf-1'" → ("'node-001 HCA-1'", "'sw-leaf-1'")
    No separator → ("", "").
    """
    m = _DESC_SPLIT.match(description)
    if not m:
        return "", ""
    return m.group(1), m.group(2)


class DiscoveryParser:
    """Parse ibnetdiscover -p lines."""

    @staticmethod
    def is_ignorable(raw: str) -> bool:
        """DR path lines, comments and blank lines carry no port data."""
        if _DR_LINE.match(raw):
            return True
        stripped = raw.strip()
        return not stripped or stripped.startswith("#")

    @staticmethod
    def parse_link(raw: str) -> Optional[LinkRecord]:
        """
        Sample line:
        CA    11  1 0x0002c903000e6c09 4x QDR - SW     1  1 0x0002c90200451b68 ( 'node-001 HCA-1' - 'sw-leaf-1' )
        """
        m = _LINK_LINE.match(raw)
        if not m:
            return None
        description = m.group(11)
        src_desc, dest_desc = split_description(description)
        return LinkRecord(
            src_type=NODE_TYPE_CODES[m.group(1)],
            src_lid=int(m.group(2)),
            src_port=int(m.group(3)),
            src_guid=m.group(4),
            width=m.group(5),
            speed=m.group(6),
            dest_type=NODE_TYPE_CODES[m.group(7)],
            dest_lid=int(m.group(8)),
            dest_port=int(m.group(9)),
            dest_guid=m.group(10),
            description=description,
            src_desc=src_desc,
            dest_desc=dest_desc,
        )

    @staticmethod
    def parse_port(raw: str) -> Optional[PortRecord]:
        """
        Sample line (port down or unconnected):
        SW     1 36 0x0002c90200451b68 4x SDR
        """
        m = _NOLINK_LINE.match(raw)
        if not m:
            return None
        return PortRecord(
            type=NODE_TYPE_CODES[m.group(1)],
            lid=int(m.group(2)),
            port=int(m.group(3)),
            guid=m.group(4),
        )

    @staticmethod
    def parse_line(raw: str) -> Optional[LinkRecord | PortRecord]:
        """Linked form first: every linked line also matches the unlinked form."""
        return DiscoveryParser.parse_link(raw) or DiscoveryParser.parse_port(raw)


# ============================================================
# Route Parser
# ============================================================

_ROUTE_HEADER = re.compile(r"^Unicast lids.*guid\s+0x([0-9a-f]{16}).*:")

_ROUTE_ENTRY = re.compile(
    r"^0x([0-9a-f]+)\s+"                # dest lid
    r"(\d+)\s+"                         # egress port
    r":\s+[(]"
    r"(Channel Adapter|Switch)\s+"      # dest type
    r"portguid 0x([0-9a-f]{16}):"       # dest guid
)


class RouteParser:
    """Parse ibroute LFT dumps."""

    @staticmethod
    def parse_header(raw: str) -> Optional[RouteHeader]:
        """
        Sample:
        Unicast lids [0x0-0x1d1] of switch DR path slid 0; dlid 0; 0,1 guid 0x0002c90200451b68 (sw-leaf-1):
        """
        m = _ROUTE_HEADER.match(raw)
        if not m:
            return None
        return RouteHeader(guid=m.group(1))

    @staticmethod
    def parse_entry(raw: str) -> Optional[RouteRecord]:
        """
        Sample:
        0x000b 001 : (Channel Adapter portguid 0x0002c903000e6c09: 'node-001 HCA-1')
        """
        m = _ROUTE_ENTRY.match(raw)
        if not m:
            return None
        return RouteRecord(
            dest_lid=int(m.group(1), 16),
            port=int(m.group(2)),
            kind=DestinationKind(m.group(3)),
            dest_guid=m.group(4),
        )


# ============================================================
# Parser Registry — dispatch by record kind
# ============================================================

PARSE_DISCOVERY = "discovery"
PARSE_ROUTE_HEADER = "route_header"
PARSE_ROUTE_ENTRY = "route_entry"

_PARSER_REGISTRY: dict[str, callable] = {
    PARSE_DISCOVERY:    DiscoveryParser.parse_line,
    PARSE_ROUTE_HEADER: RouteParser.parse_header,
    PARSE_ROUTE_ENTRY:  RouteParser.parse_entry,
}


def get_parser(record_kind: str) -> Optional[callable]:
    """
    Get the parser function for a record kind.

    Returns None if no parser is registered.
    """
    return _PARSER_REGISTRY.get(record_kind)


def get_parser_name(record_kind: str) -> str:
    """Human-readable parser name for diagnostics."""
    if record_kind in _PARSER_REGISTRY:
        return f"regex ({record_kind})"
    return "none"
