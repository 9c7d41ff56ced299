"""
Fabric Extractor — input directory → one annotated fabric per subnet.

Input layout (one set per subnet):
    ib-subnet-<subnet>.txt
    ibroutes-<subnet>/ibroute-<subnet>-<n>.txt

Sequence per subnet, each finished before the next begins:
    1. ingest discovery records        (FabricBuilder)
    2. load forwarding tables          (RouteLoader)
    3. replay every host pair          (PathWalker)
    4. detect + propagate partitions
    5. resolve reverse edges
    6. export IB-<subnet>-fabric.json
Nothing from one subnet survives into the next.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path as FsPath
from typing import Optional
import logging
import os
import sys

from .models import Fabric, PathStatus
from .parsers import subnet_from_filename
from .ingest import FabricBuilder, set_reverse_edges
from .routes import read_routes
from .walker import PathWalker, PathAttempt
from .partitions import set_partitions
from .export import write_fabric_json
from .diagnostics import (
    SubnetDiagnostic, RunDiagnostic, setup_logging,
    dump_run_summary, dump_subnet_detail,
)
from .events import SubnetEvent, TuiPathStatus, EventCallback

logger = logging.getLogger("fabtrace.extract")

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_DIRECTORY = 2
EXIT_IO = 3
EXIT_NO_MEMORY = 4


# ============================================================
# Extractor Configuration
# ============================================================

@dataclass
class ExtractConfig:
    input_dir: str
    output_dir: Optional[str] = None    # None: build the model, write nothing

    # Opaque to us; absolute, or relative to output_dir
    hwloc_dir: Optional[str] = None

    # Diagnostics
    log_file: Optional[str] = None
    diag_file: Optional[str] = None
    verbose: bool = False
    debug: bool = False
    json_output: bool = False

    # Progress lines on stderr; the TUI turns these off
    progress: bool = True
    tui: bool = False

    # TUI event callback — if set, extractor emits SubnetEvent at each stage
    event_callback: Optional[EventCallback] = None


class DirectoryError(Exception):
    """An input, output or hwloc directory could not be opened."""

    def __init__(self, kind: str, path: str, reason: str = ""):
        self.kind = kind
        self.path = path
        self.reason = reason
        super().__init__(f"Couldn't open {kind} directory: \"{path}\""
                         + (f" ({reason})" if reason else ""))


def resolve_hwloc_dir(hwloc_dir: str, output_dir: Optional[str]) -> str:
    """Absolute paths as given; relative ones are taken from output_dir."""
    if os.path.isabs(hwloc_dir) or not output_dir:
        return hwloc_dir
    return os.path.join(output_dir, hwloc_dir)


def _check_dir(kind: str, path: str) -> None:
    try:
        with os.scandir(path):
            pass
    except OSError as e:
        raise DirectoryError(kind, path, e.strerror or str(e)) from e


def find_subnets(input_dir: str | FsPath) -> list[tuple[str, str]]:
    """(subnet, discovery filename) for every ib-subnet-*.txt, sorted by subnet."""
    found = []
    for name in os.listdir(input_dir):
        subnet = subnet_from_filename(name)
        if subnet is not None:
            found.append((subnet, name))
    return sorted(found)


# ============================================================
# Fabric Extractor
# ============================================================

class FabricExtractor:
    """
    Runs the per-subnet pipeline over an input directory.

    Usage:
        config = ExtractConfig(input_dir="dumps/", output_dir="out/")
        extractor = FabricExtractor(config)
        run = extractor.run()

        # run.subnets[0].paths_complete
        # run.dump_json("/tmp/fabtrace-diag.json")
    """

    def __init__(self, config: ExtractConfig):
        self.config = config
        self._hwloc_dir: Optional[str] = None
        self._diagnostics: Optional[RunDiagnostic] = None

    @property
    def diagnostics(self) -> Optional[RunDiagnostic]:
        return self._diagnostics

    # ────────────────────────────────────────────
    # Progress Output
    # ────────────────────────────────────────────

    def _progress(self, msg: str, end: str = "\n"):
        """Progress to stderr, independent of --verbose. Off under the TUI."""
        if self.config.progress:
            print(msg, file=sys.stderr, end=end, flush=True)

    # ────────────────────────────────────────────
    # TUI Event Emission
    # ────────────────────────────────────────────

    def _emit(self, event: SubnetEvent) -> None:
        """Send an event to the TUI callback, if registered."""
        cb = self.config.event_callback
        if cb is not None:
            try:
                cb(event)
            except Exception as e:
                logger.debug(f"Event callback error: {e}")

    @staticmethod
    def _status_to_tui(status: PathStatus) -> TuiPathStatus:
        return TuiPathStatus(status.value)

    def _path_event(self, fabric: Fabric, attempt: PathAttempt) -> SubnetEvent:
        src = fabric.nodes[attempt.source]
        dst = fabric.nodes[attempt.dest]
        hops = []
        for link_id in attempt.links:
            link = fabric.links[link_id]
            parent = fabric.nodes[link.parent]
            hops.append(f"{parent.hostname or parent.id}:{link.src_port}")

        status = self._status_to_tui(attempt.status)
        if attempt.is_complete:
            color = "#00ff88"
            basic = f"  [{color}]{src.hostname} → {dst.hostname}[/]  {len(hops)} hops"
        else:
            color = "#ff4444"
            basic = (f"  [{color}]{src.hostname} → {dst.hostname}: "
                     f"{attempt.status.value}[/]  {attempt.detail}")
        verbose = [basic, f"    {' → '.join(hops)}"] if hops else [basic]
        debug = verbose + [
            f"    [#444444]{src.id} → {dst.id} via links {attempt.links}[/]"
        ]
        return SubnetEvent(
            event="path", subnet=fabric.subnet,
            source=src.hostname, dest=dst.hostname,
            status=status, hops=hops, detail=attempt.detail,
            log_basic=[basic], log_verbose=verbose, log_debug=debug,
        )

    # ────────────────────────────────────────────
    # One Subnet
    # ────────────────────────────────────────────

    def process_subnet(self, subnet: str, discover_file: str
                       ) -> tuple[Fabric, SubnetDiagnostic]:
        """
        Ingest, route, walk, partition and export one subnet. OSError from
        the discovery or route files propagates (fatal to the run).
        """
        input_dir = self.config.input_dir
        diag = SubnetDiagnostic(subnet=subnet, started_at=datetime.now())
        self._progress(f"Read subnet: {subnet}")
        self._emit(SubnetEvent(
            event="subnet_start", subnet=subnet,
            log_basic=[f"[#00d4ff]Reading subnet {subnet}[/]"],
            log_verbose=[f"[#00d4ff]Reading subnet {subnet}[/]",
                         f"  discovery: {discover_file}"],
        ))

        # ── 1. Topology ──
        builder = FabricBuilder(subnet)
        builder.read_discover(os.path.join(input_dir, discover_file))
        fabric = builder.finish()
        fabric.hwloc_dir = self._hwloc_dir
        diag.files.extend(builder.files)
        diag.unresolved_other_links = builder.unresolved_other_links

        # ── 2. Forwarding tables ──
        loader = read_routes(input_dir, subnet)
        if loader is None:
            self._progress(f"No route directory found for subnet {subnet}")
        else:
            fabric.routes = loader.tables
            diag.route_dir_found = True
            diag.routing_tables = len(loader.tables)
            diag.files.extend(loader.files)

        # ── 3. Paths ──
        on_path = None
        if self.config.event_callback is not None:
            def on_path(attempt: PathAttempt):
                self._emit(self._path_event(fabric, attempt))
        walker = PathWalker(fabric.nodes, fabric.routes, on_path=on_path)
        fabric.paths = walker.walk()
        diag.path_status = dict(walker.status_counts)

        # ── 4. Partitions ──
        partitions = set_partitions(fabric)
        diag.partitions = [p.name for p in partitions]
        self._progress(f"{len(partitions)} partitions found")
        for idx, p in enumerate(partitions):
            self._progress(f"\t'{p.name}'")
            members = [fabric.nodes[n].hostname for n in p.nodes]
            self._emit(SubnetEvent(
                event="partition", subnet=subnet,
                partition=p.name, partition_index=idx, members=members,
                log_basic=[f"  partition [bold]'{p.name}'[/]: {len(members)} hosts"],
                log_verbose=[f"  partition [bold]'{p.name}'[/]: {len(members)} hosts",
                             f"    {', '.join(members)}"],
            ))

        # ── 5. Reverse edges ──
        missing = set_reverse_edges(fabric)
        if missing:
            logger.debug(f"Subnet {subnet}: {missing} edges without reverse")

        # ── 6. Export ──
        if self.config.output_dir:
            diag.output_file = str(write_fabric_json(fabric, self.config.output_dir))

        diag.nodes = len(fabric.nodes)
        diag.hosts = len(fabric.hosts())
        diag.switches = len(fabric.switches())
        diag.links = len(fabric.links)
        diag.completed_at = datetime.now()

        self._emit(SubnetEvent(
            event="subnet_done", subnet=subnet,
            nodes=diag.nodes, links=diag.links,
            paths_complete=diag.paths_complete, paths_missing=diag.paths_missing,
            log_basic=[f"[#00ff88]Subnet {subnet} done[/]  "
                       f"{diag.paths_complete} paths, {diag.paths_missing} without route"],
            log_verbose=[f"[#00ff88]Subnet {subnet} done[/]  "
                         f"{diag.paths_complete} paths, {diag.paths_missing} without route",
                         f"  {diag.hosts} hosts, {diag.switches} switches, "
                         f"{diag.links} links, {diag.routing_tables} tables"],
        ))
        return fabric, diag

    # ────────────────────────────────────────────
    # Whole Run
    # ────────────────────────────────────────────

    def check_dirs(self) -> None:
        """Raise DirectoryError if any configured directory cannot be opened."""
        _check_dir("input", self.config.input_dir)
        if self.config.output_dir:
            _check_dir("output", self.config.output_dir)
        if self.config.hwloc_dir:
            resolved = resolve_hwloc_dir(self.config.hwloc_dir, self.config.output_dir)
            _check_dir("hwloc", resolved)
            self._hwloc_dir = resolved

    def run(self) -> RunDiagnostic:
        """Process every subnet in the input directory."""
        setup_logging(
            log_file=self.config.log_file,
            debug=self.config.debug,
            verbose=self.config.verbose,
            tui=self.config.tui,
        )

        self._diagnostics = RunDiagnostic(
            input_dir=self.config.input_dir,
            output_dir=self.config.output_dir,
            started_at=datetime.now(),
        )
        self.check_dirs()

        subnets = find_subnets(self.config.input_dir)
        if not subnets:
            logger.warning(f"No ib-subnet-*.txt file in {self.config.input_dir}")

        for subnet, filename in subnets:
            # The fabric is dropped here; only its diagnostic is kept
            _, diag = self.process_subnet(subnet, filename)
            self._diagnostics.subnets.append(diag)

        self._diagnostics.completed_at = datetime.now()
        run = self._diagnostics
        self._emit(SubnetEvent(
            event="run_done", subnets=len(run.subnets),
            paths_complete=sum(s.paths_complete for s in run.subnets),
            paths_missing=sum(s.paths_missing for s in run.subnets),
            duration=run.duration or 0.0,
            log_basic=["", "[#00ff88]━━━ Extraction complete ━━━[/]",
                       f"  {len(run.subnets)} subnets │ {run.duration or 0.0:.1f}s"],
        ))

        if self.config.diag_file:
            run.dump_json(self.config.diag_file)
        return run


# ============================================================
# CLI Entry Point
# ============================================================

def _build_parser():
    import argparse

    class _ArgumentParser(argparse.ArgumentParser):
        def error(self, message):
            self.print_usage(sys.stderr)
            self.exit(EXIT_USAGE, f"Wrong parameters: {message}\n")

    parser = _ArgumentParser(
        prog="fabtrace",
        description="Rebuild InfiniBand fabric topology and host-to-host "
                    "paths from ibnetdiscover and ibroute dumps.",
        epilog=(
            "Examples:\n"
            "  fabtrace dumps/ out/\n"
            "  fabtrace dumps/ out/ --hwloc-dir hwloc -v\n"
            "  fabtrace dumps/ out/ --diag /tmp/fabtrace.json --json\n"
            "\n"
            "hwloc-dir can be an absolute path or a relative path from out-dir"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("input_dir", help="Directory holding ib-subnet-*.txt "
                                          "and ibroutes-* dumps")
    parser.add_argument("output_dir", help="Directory for IB-<subnet>-fabric.json")
    parser.add_argument("--hwloc-dir", default=None,
                        help="hwloc XML directory (passed through)")

    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Print per-subnet detail")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--log", default=None,
                        help="Write debug log to file")
    parser.add_argument("--diag", default=None,
                        help="Write full diagnostic JSON to file")
    parser.add_argument("--json", action="store_true",
                        help="Output run summary as JSON")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    fabtrace dumps/ out/ [--hwloc-dir PATH] [-v] [--log FILE] [--json]
    """
    import json as json_mod

    parser = _build_parser()
    args = parser.parse_args(argv)

    config = ExtractConfig(
        input_dir=args.input_dir,
        output_dir=args.output_dir,
        hwloc_dir=args.hwloc_dir,
        log_file=args.log,
        diag_file=args.diag,
        verbose=args.verbose,
        debug=args.debug,
        json_output=args.json,
    )

    extractor = FabricExtractor(config)
    try:
        run = extractor.run()
    except DirectoryError as e:
        print(str(e), file=sys.stderr)
        return EXIT_DIRECTORY
    except MemoryError:
        logger.critical("Out of memory")
        return EXIT_NO_MEMORY
    except OSError as e:
        logger.error(f"Fatal I/O error: {e}")
        return EXIT_IO

    if args.json:
        output = run.to_dict()
        for subnet in output["subnets"]:
            # Per-line records belong in --diag, not on stdout
            for f in subnet["files"]:
                f.pop("skipped", None)
        print(json_mod.dumps(output, indent=2, default=str))
    else:
        print()
        print(dump_run_summary(run))
        if args.verbose:
            for subnet in run.subnets:
                print(dump_subnet_detail(subnet))
        print()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
