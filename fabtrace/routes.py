"""
Routing Table Store — ibroute LFT dumps → switch id → (dest id → egress port).

One file per switch, each opening with a "Unicast lids ... guid 0x...:"
header. Entries before any header make the file unusable; the rest of
that file is skipped, other files still load.
"""

from __future__ import annotations
from pathlib import Path as FsPath
from typing import Iterable, Optional
import errno
import logging
import os
import stat

from .models import RoutingTable, RouteEntry
from .parsers import (
    RouteHeader, RouteRecord,
    PARSE_ROUTE_HEADER, PARSE_ROUTE_ENTRY,
    get_parser, get_parser_name, route_dirname, route_file_index,
)
from .diagnostics import (
    FileDiagnostic, FileKind, LineRecord, ParseResult,
)

logger = logging.getLogger("fabtrace.routes")


class RouteLoader:
    """
    Accumulates routing tables for one subnet.

    Usage:
        loader = RouteLoader()
        loader.read_route_dir("in/ibroutes-fe80:0000:0000:0000")
        tables = loader.tables
    """

    def __init__(self):
        self.tables: dict[str, RoutingTable] = {}
        self.files: list[FileDiagnostic] = []
        self.duplicates = 0

    def _table(self, header: RouteHeader) -> RoutingTable:
        switch_id = header.switch_id
        table = self.tables.get(switch_id)
        if table is None:
            table = RoutingTable(switch=switch_id)
            self.tables[switch_id] = table
        return table

    def _add_entry(self, table: RoutingTable, record: RouteRecord) -> None:
        dest = record.dest_id
        if dest in table.entries:
            # First entry wins
            self.duplicates += 1
            logger.debug(f"[{table.switch}] duplicate route to {dest}, "
                         f"keeping port {table.entries[dest].port}")
            return
        table.entries[dest] = RouteEntry(
            dest=dest,
            port=record.port,
            dest_lid=record.dest_lid,
            kind=record.kind,
        )

    def ingest_lines(self, lines: Iterable[str], source: str = "<lines>"
                     ) -> FileDiagnostic:
        diag = FileDiagnostic(path=source, kind=FileKind.ROUTES)
        parse_header = get_parser(PARSE_ROUTE_HEADER)
        parse_entry = get_parser(PARSE_ROUTE_ENTRY)
        table: Optional[RoutingTable] = None

        for lineno, raw in enumerate(lines, start=1):
            diag.lines_read += 1

            header = parse_header(raw)
            if header is not None:
                table = self._table(header)
                diag.records += 1
                continue

            record = parse_entry(raw)
            if record is not None:
                if table is None:
                    logger.error(f"Malformed route file {source}: "
                                 f"entry on line {lineno} before switch header")
                    diag.skipped.append(LineRecord(
                        source=source, lineno=lineno, raw=raw.rstrip("\n"),
                        parse_result=ParseResult.ORPHAN,
                        parser_used=get_parser_name(PARSE_ROUTE_ENTRY),
                        detail="Route entry before any 'Unicast lids' header",
                    ))
                    diag.aborted = True
                    break
                self._add_entry(table, record)
                diag.records += 1
                continue

            # Column headings, footers, blank lines
            diag.skipped.append(LineRecord(
                source=source, lineno=lineno, raw=raw.rstrip("\n"),
                parse_result=ParseResult.IGNORED,
                parser_used=get_parser_name(PARSE_ROUTE_ENTRY),
                detail="Not a header or route entry",
            ))

        self.files.append(diag)
        return diag

    def read_route_file(self, path: str | FsPath) -> FileDiagnostic:
        """OSError propagates: an unreadable LFT dump is fatal."""
        path = str(path)
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return self.ingest_lines(f, source=path)

    def read_route_dir(self, path: str | FsPath) -> int:
        """Read every ibroute-*.txt in ascending index order. Returns file count."""
        path = FsPath(path)
        names = []
        for entry in os.listdir(path):
            idx = route_file_index(entry)
            if idx is not None:
                names.append((idx, entry))
        for _, name in sorted(names):
            self.read_route_file(path / name)
        return len(names)


def find_route_dir(input_dir: str | FsPath, subnet: str) -> Optional[FsPath]:
    """
    The subnet's ibroutes-<subnet> directory, or None if absent. Any stat
    failure other than "does not exist" propagates.
    """
    route_path = FsPath(input_dir) / route_dirname(subnet)
    try:
        st = os.stat(route_path)
    except OSError as e:
        if e.errno == errno.ENOENT:
            return None
        raise
    if not stat.S_ISDIR(st.st_mode):
        return None
    return route_path


def read_routes(input_dir: str | FsPath, subnet: str) -> Optional[RouteLoader]:
    """Load the subnet's routing tables. None when it has no route directory."""
    route_path = find_route_dir(input_dir, subnet)
    if route_path is None:
        logger.info(f"No route directory found for subnet {subnet}")
        return None

    loader = RouteLoader()
    count = loader.read_route_dir(route_path)
    logger.info(f"Subnet {subnet}: {count} route files, "
                f"{len(loader.tables)} switch tables")
    return loader
