"""
Topology Ingestion — discovery records → nodes, edges, physical links.

One FabricBuilder per subnet. It owns the per-subnet counters (link
creation order, anonymous host numbering), so nothing leaks from one
subnet into the next.

Sequence:
    builder = FabricBuilder(subnet)
    builder.read_discover(path)      # or ingest_lines() / ingest_record()
    fabric = builder.finish()        # resolves other_link on every link

finish() must run after the last record: a link's peer port is often
described later in the file than the link itself.
"""

from __future__ import annotations
from pathlib import Path as FsPath
from typing import Iterable, Optional
import logging

from .models import (
    Fabric, Node, NodeType, Edge, PhysicalLink,
    canonical_id, compute_gbits, extract_hostname,
)
from .parsers import (
    LinkRecord, PortRecord, DiscoveryParser,
    PARSE_DISCOVERY, get_parser, get_parser_name,
)
from .diagnostics import (
    FileDiagnostic, FileKind, LineRecord, ParseResult, parse_with_diagnostics,
)

logger = logging.getLogger("fabtrace.ingest")


class FabricBuilder:
    """
    Builds one subnet's Fabric from discovery records.

    Usage:
        builder = FabricBuilder("fe80:0000:0000:0000")
        builder.read_discover("in/ib-subnet-fe80:0000:0000:0000.txt")
        fabric = builder.finish()
    """

    def __init__(self, subnet: str):
        self.fabric = Fabric(subnet=subnet)
        self._next_link_id = 0
        self._anonymous_hosts = 0
        self.files: list[FileDiagnostic] = []
        self.unresolved_other_links = 0

    # ────────────────────────────────────────────
    # Nodes
    # ────────────────────────────────────────────

    def get_node(self, node_type: NodeType, lid: int, guid: str,
                 description: str) -> Node:
        """
        Resolve or create the node for `guid`. An existing node is returned
        unmodified; the first description seen wins.
        """
        node_id = canonical_id(guid)
        node = self.fabric.nodes.get(node_id)
        if node is not None:
            return node

        node = Node(
            id=node_id,
            lid=lid,
            type=node_type,
            description=description,
            hostname=extract_hostname(description),
        )
        if node.is_host and not node.hostname:
            node.hostname = f"ANONYMOUS-{self._anonymous_hosts}"
            self._anonymous_hosts += 1
            logger.debug(f"[{node_id}] no hostname in {description!r}, "
                         f"using {node.hostname}")

        self.fabric.nodes[node_id] = node
        return node

    # ────────────────────────────────────────────
    # Edges and Links
    # ────────────────────────────────────────────

    def _get_edge(self, src: Node, dest: Node) -> Edge:
        edge = src.edges.get(dest.id)
        if edge is None:
            edge = Edge(source=src.id, dest=dest.id)
            src.edges[dest.id] = edge
        return edge

    def _detach(self, node: Node, link: PhysicalLink, keep_edge: bool = False) -> None:
        """
        Remove a link being overwritten from its edge and the arena. The edge
        goes too once empty. With keep_edge the replacement lands on the same
        edge and port, so both keep their position in insertion order.
        """
        port_idx = link.src_port - 1
        edge = node.edges.get(link.dest)
        if edge is not None:
            edge.gbits -= link.gbits
            if not keep_edge:
                if port_idx in edge.link_ports:
                    edge.link_ports.remove(port_idx)
                if not edge.link_ports:
                    del node.edges[link.dest]
        self.fabric.links.pop(link.id, None)

    def add_link(self, record: LinkRecord) -> PhysicalLink:
        if record.src_port < 1:
            raise ValueError(f"port {record.src_port} on "
                             f"{canonical_id(record.src_guid)} is not 1-based")

        src = self.get_node(record.src_type, record.src_lid,
                            record.src_guid, record.src_desc)
        dest = self.get_node(record.dest_type, record.dest_lid,
                             record.dest_guid, record.dest_desc)

        link = PhysicalLink(
            id=self._next_link_id,
            ports=(record.src_port, record.dest_port),
            parent=src.id,
            dest=dest.id,
            width=record.width,
            speed=record.speed,
            gbits=compute_gbits(record.speed, record.width),
            description=record.description,
        )
        self._next_link_id += 1

        port_idx = record.src_port - 1
        if port_idx >= len(src.ports):
            src.ports.extend([None] * (port_idx + 1 - len(src.ports)))
        previous = src.ports[port_idx]
        if previous is not None:
            logger.debug(f"[{src.id}] port {record.src_port} reported again, "
                         f"replacing link {previous.id}")
            self._detach(src, previous, keep_edge=previous.dest == dest.id)
        src.ports[port_idx] = link
        self.fabric.links[link.id] = link

        edge = self._get_edge(src, dest)
        edge.gbits += link.gbits
        if port_idx not in edge.link_ports:
            edge.link_ports.append(port_idx)
        return link

    def ingest_record(self, record: LinkRecord | PortRecord) -> Optional[PhysicalLink]:
        if isinstance(record, LinkRecord):
            return self.add_link(record)
        # No peer: the port exists but carries nothing we model
        logger.debug(f"[{canonical_id(record.guid)}] port {record.port} has no peer")
        return None

    # ────────────────────────────────────────────
    # Line / File Input
    # ────────────────────────────────────────────

    def ingest_lines(self, lines: Iterable[str], source: str = "<lines>"
                     ) -> FileDiagnostic:
        diag = FileDiagnostic(path=source, kind=FileKind.DISCOVERY)
        parser = get_parser(PARSE_DISCOVERY)
        parser_name = get_parser_name(PARSE_DISCOVERY)

        for lineno, raw in enumerate(lines, start=1):
            diag.lines_read += 1
            if DiscoveryParser.is_ignorable(raw):
                diag.skipped.append(LineRecord(
                    source=source, lineno=lineno, raw=raw.rstrip("\n"),
                    parse_result=ParseResult.IGNORED, parser_used=parser_name,
                    detail="DR, comment or blank line",
                ))
                continue

            record, line_rec = parse_with_diagnostics(
                source, lineno, raw, parser, parser_name, logger,
            )
            if record is None:
                logger.warning(f"[{source}:{lineno}] line not recognized: "
                               f"{raw.rstrip()}")
                diag.skipped.append(line_rec)
                continue

            try:
                self.ingest_record(record)
            except ValueError as e:
                logger.warning(f"[{source}:{lineno}] {e}")
                diag.skipped.append(LineRecord(
                    source=source, lineno=lineno, raw=raw.rstrip("\n"),
                    parse_result=ParseResult.NO_MATCH, parser_used=parser_name,
                    detail=str(e),
                ))
                continue
            diag.records += 1

        self.files.append(diag)
        return diag

    def read_discover(self, path: str | FsPath) -> FileDiagnostic:
        """
        Ingest one discovery file. OSError (missing / unreadable file)
        propagates and is fatal to the run.
        """
        path = str(path)
        logger.info(f"Reading discovery file {path}")
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return self.ingest_lines(f, source=path)

    # ────────────────────────────────────────────
    # Post-pass
    # ────────────────────────────────────────────

    def _find_other_link(self, link: PhysicalLink) -> Optional[PhysicalLink]:
        """
        The link leaving the peer port. Only accepted when it lands back on
        our node and port. A partial or asymmetric dump leaves it unresolved.
        """
        dest = self.fabric.nodes.get(link.dest)
        if dest is None:
            return None
        other = dest.link_at(link.dest_port)
        if other is None or other.dest != link.parent or other.dest_port != link.src_port:
            return None
        return other

    def _resolve_links(self, node: Node) -> None:
        for link in node.links():
            other = self._find_other_link(link)
            link.other_link = other.id if other else None
            if other is None:
                self.unresolved_other_links += 1
                logger.debug(f"[{node.id}] port {link.src_port} → "
                             f"{link.dest}:{link.dest_port} has no reverse link")

    def finish(self) -> Fabric:
        """
        Resolve other_link for every link. Idempotent.

        Nothing here merges similar nodes, so subnodes stay empty unless a
        later step fills them; when present, their links are resolved instead.
        """
        self.unresolved_other_links = 0
        for node in self.fabric.nodes.values():
            if node.subnodes:
                for subnode in node.subnodes.values():
                    self._resolve_links(subnode)
            else:
                self._resolve_links(node)

        logger.info(
            f"Subnet {self.fabric.subnet}: {len(self.fabric.nodes)} nodes, "
            f"{len(self.fabric.links)} links"
        )
        return self.fabric


def set_reverse_edges(fabric: Fabric) -> int:
    """
    Point every edge at the edge going the other way. Returns the number
    of edges left without a reverse.
    """
    missing = 0
    for node in fabric.nodes.values():
        for edge in node.edges.values():
            peer = fabric.nodes.get(edge.dest)
            back = peer.edges.get(node.id) if peer else None
            edge.reverse_edge = back.key if back else None
            if back is None:
                missing += 1
    return missing
