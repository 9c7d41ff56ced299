"""
InfiniBand Fabric Extractor — Diagnostic Framework

Every line, every file, every path decision — traceable.
Three levels:
  1. Run-level summary (always, to stdout)
  2. Subnet-level detail (--verbose, per-subnet counts and partitions)
  3. Raw capture (--debug/--log/--diag, every skipped line and why)

Philosophy: if a line is dropped, we need to know WHY.
  - Was it a DR or comment line?
  - Did it match no known record pattern?
  - Was it a route entry with no switch header before it?
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Any
import json
import logging

from .models import PathStatus


# ============================================================
# Structured Diagnostic Records
# ============================================================


class ParseResult(Enum):
    OK = "ok"                       # matched a record pattern
    IGNORED = "ignored"             # DR / comment / blank / column header
    NO_MATCH = "no-match"           # matched nothing — malformed
    ORPHAN = "orphan"               # route entry before any switch header
    EXCEPTION = "exception"         # parser threw


class FileKind(Enum):
    DISCOVERY = "discovery"
    ROUTES = "routes"


@dataclass
class LineRecord:
    """One input line that did not become a record."""
    source: str                         # file path
    lineno: int
    raw: str
    parse_result: ParseResult = ParseResult.NO_MATCH
    parser_used: str = ""
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "lineno": self.lineno,
            "raw": self.raw,
            "parse_result": self.parse_result.value,
            "parser_used": self.parser_used,
            "detail": self.detail,
        }


@dataclass
class FileDiagnostic:
    """All diagnostic records for one input file."""
    path: str
    kind: FileKind
    lines_read: int = 0
    records: int = 0
    skipped: list[LineRecord] = field(default_factory=list)
    aborted: bool = False               # rest of file ignored after an error

    def malformed(self) -> list[LineRecord]:
        return [r for r in self.skipped if r.parse_result in (
            ParseResult.NO_MATCH, ParseResult.ORPHAN, ParseResult.EXCEPTION
        )]

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "kind": self.kind.value,
            "lines_read": self.lines_read,
            "records": self.records,
            "malformed": len(self.malformed()),
            "aborted": self.aborted,
            "skipped": [r.to_dict() for r in self.skipped],
        }


# ============================================================
# Subnet Diagnostic — one ingest → route → path → partition run
# ============================================================

@dataclass
class SubnetDiagnostic:
    subnet: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    files: list[FileDiagnostic] = field(default_factory=list)
    route_dir_found: bool = False

    nodes: int = 0
    hosts: int = 0
    switches: int = 0
    links: int = 0
    unresolved_other_links: int = 0
    routing_tables: int = 0
    path_status: dict[PathStatus, int] = field(default_factory=dict)
    partitions: list[str] = field(default_factory=list)
    output_file: Optional[str] = None

    @property
    def paths_complete(self) -> int:
        return self.path_status.get(PathStatus.COMPLETE, 0)

    @property
    def paths_missing(self) -> int:
        return sum(n for s, n in self.path_status.items()
                   if s != PathStatus.COMPLETE)

    def malformed_lines(self) -> int:
        return sum(len(f.malformed()) for f in self.files)

    def to_dict(self) -> dict:
        return {
            "subnet": self.subnet,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "summary": {
                "nodes": self.nodes,
                "hosts": self.hosts,
                "switches": self.switches,
                "links": self.links,
                "unresolved_other_links": self.unresolved_other_links,
                "route_dir_found": self.route_dir_found,
                "routing_tables": self.routing_tables,
                "paths": {s.value: n for s, n in self.path_status.items()},
                "malformed_lines": self.malformed_lines(),
            },
            "partitions": self.partitions,
            "output_file": self.output_file,
            "files": [f.to_dict() for f in self.files],
        }


@dataclass
class RunDiagnostic:
    """Complete diagnostic record for one extractor invocation."""
    input_dir: str
    output_dir: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    subnets: list[SubnetDiagnostic] = field(default_factory=list)

    @property
    def duration(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict:
        return {
            "input_dir": self.input_dir,
            "output_dir": self.output_dir,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration,
            "summary": {
                "subnets": len(self.subnets),
                "paths_complete": sum(s.paths_complete for s in self.subnets),
                "paths_missing": sum(s.paths_missing for s in self.subnets),
                "malformed_lines": sum(s.malformed_lines() for s in self.subnets),
            },
            "subnets": [s.to_dict() for s in self.subnets],
        }

    def dump_json(self, path: str):
        """Write full diagnostic to JSON file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


# ============================================================
# Logger Setup
# ============================================================
#
# Three output modes, layered:
#
#   (default)       : warnings and errors to stderr
#   --verbose / -v  : per-subnet progress to stderr
#   --debug         : everything, to file (--log FILE) or stderr
#
# The TUI never gets a stderr handler — it would tear the screen.
# It passes tui=True and relies on --log for anything beyond events.
#

def setup_logging(
    log_file: Optional[str] = None,
    debug: bool = False,
    verbose: bool = False,
    tui: bool = False,
) -> logging.Logger:
    """
    Configure logging for the extractor.

    - log_file: write debug-level to file (TUI-safe)
    - debug: debug-level to stderr (non-TUI mode only)
    - verbose: info-level to stderr
    - tui: suppress all stderr output
    """
    logger = logging.getLogger("fabtrace")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    # File handler — always debug level, always safe with TUI
    if log_file:
        fh = logging.FileHandler(log_file, mode="w")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    if not tui:
        sh = logging.StreamHandler()
        if debug:
            sh.setLevel(logging.DEBUG)
        elif verbose:
            sh.setLevel(logging.INFO)
        else:
            sh.setLevel(logging.WARNING)
        sh.setFormatter(formatter)
        logger.addHandler(sh)

    # Null handler if nothing else — prevent "no handler" warnings
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


# ============================================================
# Diagnostic-Aware Parse Wrapper
# ============================================================
#
# Every line parse goes through this. It captures what happened
# and returns both the result and, for non-records, the line record.
#

def parse_with_diagnostics(
    source: str,
    lineno: int,
    raw: str,
    parser_func: callable,
    parser_name: str = "unknown",
    logger: Optional[logging.Logger] = None,
) -> tuple[Any, Optional[LineRecord]]:
    """
    Wrap a line parser with diagnostics.

    Returns:
        (parsed_result, line_record)
        parsed_result is None if the line matched nothing; line_record is
        None when parsing succeeded.
    """
    line = raw.rstrip("\n")
    try:
        result = parser_func(raw)
    except Exception as e:
        record = LineRecord(
            source=source, lineno=lineno, raw=line,
            parse_result=ParseResult.EXCEPTION,
            parser_used=parser_name,
            detail=f"{type(e).__name__}: {e}",
        )
        if logger:
            logger.error(
                f"[{source}:{lineno}] Parser exception: {type(e).__name__}: {e}\n"
                f"{_indent(line)}"
            )
        return None, record

    if result is not None:
        return result, None

    record = LineRecord(
        source=source, lineno=lineno, raw=line,
        parse_result=ParseResult.NO_MATCH,
        parser_used=parser_name,
        detail="Line matches no known record pattern",
    )
    return None, record


def _indent(text: str, prefix: str = "    ") -> str:
    return "\n".join(prefix + line for line in text.splitlines())


# ============================================================
# Diagnostic Dump Formats
# ============================================================

def dump_subnet_summary(diag: SubnetDiagnostic) -> str:
    """One-line summary for status bar or verbose output."""
    return (
        f"subnet {diag.subnet} | "
        f"{diag.hosts} hosts {diag.switches} switches {diag.links} links | "
        f"paths {diag.paths_complete} ✓ {diag.paths_missing} ✗ | "
        f"{len(diag.partitions)} partitions"
    )


def dump_subnet_detail(diag: SubnetDiagnostic) -> str:
    """Multi-line detail for --verbose."""
    lines = [f"═══ Subnet {diag.subnet} ═══"]

    for f in diag.files:
        icon = "✗" if f.aborted else ("⚠" if f.malformed() else "✓")
        lines.append(
            f"  [{icon}] {f.kind.value}: {f.path} "
            f"({f.records} records, {len(f.malformed())} malformed)"
        )
        for rec in f.malformed():
            lines.append(f"      line {rec.lineno}: {rec.parse_result.value} — {rec.detail}")

    if not diag.route_dir_found:
        lines.append("  ⚠ no route directory — every path unknown")

    lines.append(f"  ─── Paths ───")
    for status in PathStatus:
        n = diag.path_status.get(status, 0)
        if n:
            lines.append(f"    {status.value:10s} {n}")

    lines.append(f"  ─── Partitions ({len(diag.partitions)}) ───")
    for name in diag.partitions:
        lines.append(f"    '{name}'")

    if diag.unresolved_other_links:
        lines.append(
            f"    ⚠ {diag.unresolved_other_links} links without a reverse link"
        )

    return "\n".join(lines)


def dump_run_summary(diag: RunDiagnostic) -> str:
    """Full run summary — suitable for terminal or report output."""
    lines = [
        f"fabtrace: {diag.input_dir}",
        f"{'─' * 50}",
    ]

    for subnet in diag.subnets:
        lines.append(dump_subnet_summary(subnet))

    s = diag.to_dict()["summary"]
    lines.append(f"{'─' * 50}")
    elapsed = f"{diag.duration:.1f}s" if diag.duration is not None else "?"
    lines.append(
        f"Subnets: {s['subnets']} | "
        f"Paths: {s['paths_complete']} | "
        f"No route: {s['paths_missing']} | "
        f"Malformed lines: {s['malformed_lines']} | "
        f"{elapsed}"
    )
    return "\n".join(lines)
