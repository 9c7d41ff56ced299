"""
Shared event types for extractor ↔ TUI communication.

This module defines the SubnetEvent dataclass that the extractor emits
and the TUI consumes. Neither side imports the other — this is the only
shared dependency.

Usage (extractor side):
    from .events import SubnetEvent, TuiPathStatus
    callback(SubnetEvent(event="path", subnet="fe80:...", source="node-001", ...))

Usage (TUI side):
    from .events import SubnetEvent, TuiPathStatus, LogLevel
    for evt in event_stream:
        process(evt)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional


class TuiPathStatus(Enum):
    """Path outcome icons for tree display. Maps 1:1 to the walker's PathStatus."""
    COMPLETE = "complete"
    NO_TABLE = "no-table"
    NO_ENTRY = "no-entry"
    DEAD_PORT = "dead-port"
    LOOP = "loop"


# Status → (color, icon) for the tree pane
STATUS_STYLE: dict[TuiPathStatus, tuple[str, str]] = {
    TuiPathStatus.COMPLETE:  ("#00ff88", "✓"),
    TuiPathStatus.NO_TABLE:  ("#ffcc00", "?"),
    TuiPathStatus.NO_ENTRY:  ("#ff4444", "✗"),
    TuiPathStatus.DEAD_PORT: ("#ff4444", "⊘"),
    TuiPathStatus.LOOP:      ("#ff8800", "↺"),
}


class LogLevel(Enum):
    BASIC = "basic"
    VERBOSE = "verbose"
    DEBUG = "debug"


@dataclass
class SubnetEvent:
    """
    One event from the extractor to the TUI.

    Events:
        subnet_start — discovery file found, about to ingest
        partition    — partition detected (one per partition)
        path         — one host pair walked, complete or not
        subnet_done  — subnet exported, counts final
        run_done     — every subnet processed

    Log lines use Rich markup for coloring.
    """
    event: str

    subnet: str = ""

    # partition
    partition: str = ""
    partition_index: int = -1
    members: list[str] = field(default_factory=list)      # hostnames

    # path
    source: str = ""                    # hostname
    dest: str = ""                      # hostname
    status: Optional[TuiPathStatus] = None
    hops: list[str] = field(default_factory=list)         # "sw-leaf-1:3" per hop
    detail: str = ""

    # Log lines at three verbosity levels (Rich markup)
    log_basic: list[str] = field(default_factory=list)
    log_verbose: list[str] = field(default_factory=list)
    log_debug: list[str] = field(default_factory=list)

    # subnet_done / run_done fields
    nodes: int = 0
    links: int = 0
    paths_complete: int = 0
    paths_missing: int = 0
    subnets: int = 0
    duration: float = 0.0
    ok: bool = True


# Type alias for the event callback
EventCallback = Callable[[SubnetEvent], None]
