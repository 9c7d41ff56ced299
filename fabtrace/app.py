"""
Textual TUI for fabtrace — live fabric extraction view.

    FabTraceApp(config=ExtractConfig(...))

The extractor runs in a thread worker and emits SubnetEvents via a queue.
The tree groups what it reports as subnet → partition → source host →
destination, one leaf per host pair walked.
"""

from __future__ import annotations

import asyncio
import queue
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import RichLog, Static, Tree
from textual.widgets.tree import TreeNode

from .events import SubnetEvent, TuiPathStatus, STATUS_STYLE, LogLevel
from .models import extract_partition_name

CSS_PATH = Path(__file__).parent / "theme.tcss"


class TitleBar(Static):
    pass

class StatusBar(Static):
    pass


class FabTraceApp(App):
    """fabtrace TUI — subnets, partitions and reconstructed paths."""

    CSS_PATH = CSS_PATH
    TITLE = "fabtrace"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("b", "log_basic", "Basic"),
        Binding("v", "log_verbose", "Verbose"),
        Binding("d", "log_debug", "Debug"),
    ]

    def __init__(self, config=None, events: list[SubnetEvent] | None = None):
        super().__init__()
        self._config = config
        self._events = events
        self.input_dir = config.input_dir if config else ""

        self._log_level = LogLevel.BASIC
        self._subnet_nodes: dict[str, TreeNode] = {}
        self._partition_nodes: dict[tuple[str, str], TreeNode] = {}
        self._host_nodes: dict[tuple[str, str], TreeNode] = {}
        self._all_logs: list[tuple[SubnetEvent, datetime]] = []
        self._current_subnet = ""
        self._paths_seen = 0
        self._paths_complete = 0
        self._run_done = False
        self._result: SubnetEvent | None = None
        self._start = datetime.now()
        self._event_queue: queue.Queue[SubnetEvent | None] = queue.Queue()

    def compose(self) -> ComposeResult:
        yield TitleBar(f"  🔍 fabtrace: {self.input_dir}", id="title-bar")
        with Horizontal(id="main-split"):
            with Vertical(id="tree-pane"):
                tree: Tree[str] = Tree(f"🔍 {self.input_dir}", id="fabric-tree")
                tree.show_root = True
                tree.root.expand()
                tree.guide_depth = 3
                yield tree
            with Vertical(id="log-pane"):
                yield RichLog(id="log-view", highlight=True, markup=True,
                              wrap=True, auto_scroll=True)
        yield StatusBar(id="status-bar")

    def on_mount(self) -> None:
        self._update_status()
        if self._config:
            self.run_worker(self._run_live_extract(), exclusive=True, group="extract")
        elif self._events:
            self.run_worker(self._replay_events(), exclusive=True, group="extract")

    # ── Live extractor integration ──────────────────────────────────────

    async def _run_live_extract(self) -> None:
        """
        Run the extractor in a background thread.
        Extractor (sync) → queue.put(SubnetEvent) → async poll → TUI.
        """
        from .extract import FabricExtractor

        config = self._config
        config.event_callback = self._event_queue.put
        config.progress = False
        config.tui = True

        def _extract_thread():
            try:
                FabricExtractor(config).run()
            except Exception as e:
                self._event_queue.put(SubnetEvent(
                    event="run_done", ok=False,
                    log_basic=[f"[#ff4444]Extractor error: {e}[/]"],
                ))
            finally:
                self._event_queue.put(None)

        thread = threading.Thread(target=_extract_thread, daemon=True)
        thread.start()

        while True:
            try:
                evt = self._event_queue.get_nowait()
            except queue.Empty:
                await asyncio.sleep(0.05)
                continue
            if evt is None:
                break
            self._process_event(evt)
            if evt.event == "run_done":
                break

        thread.join(timeout=5.0)

    async def _replay_events(self) -> None:
        for evt in self._events:
            self._process_event(evt)
            await asyncio.sleep(0.01)

    # ── Event processing ────────────────────────────────────────────────

    def _process_event(self, evt: SubnetEvent) -> None:
        now = datetime.now()
        self._all_logs.append((evt, now))
        if evt.event == "subnet_start":
            self._current_subnet = evt.subnet
            self._add_subnet_node(evt)
        elif evt.event == "path":
            self._add_path_leaf(evt)
            self._paths_seen += 1
            if evt.status == TuiPathStatus.COMPLETE:
                self._paths_complete += 1
        elif evt.event == "partition":
            self._label_partition(evt)
        elif evt.event == "subnet_done":
            self._label_subnet_done(evt)
        elif evt.event == "run_done":
            self._run_done = True
            self._result = evt
        self._write_log_lines(evt, now)
        self._update_status()

    # ── Tree management ─────────────────────────────────────────────────

    def _add_subnet_node(self, evt: SubnetEvent) -> None:
        tree = self.query_one("#fabric-tree", Tree)
        label = Text()
        label.append("⟳ ", style="#00d4ff")
        label.append(evt.subnet, style="#00d4ff")
        node = tree.root.add(label, expand=True)
        self._subnet_nodes[evt.subnet] = node

    def _partition_node(self, subnet: str, name: str) -> TreeNode:
        key = (subnet, name)
        node = self._partition_nodes.get(key)
        if node is None:
            parent = self._subnet_nodes.get(subnet)
            if parent is None:
                parent = self.query_one("#fabric-tree", Tree).root
            node = parent.add(Text(f"'{name}'", style="bold"), expand=False)
            self._partition_nodes[key] = node
        return node

    def _host_node(self, subnet: str, host: str) -> TreeNode:
        key = (subnet, host)
        node = self._host_nodes.get(key)
        if node is None:
            partition = self._partition_node(subnet, extract_partition_name(host))
            node = partition.add(Text(host, style="#cccccc"), expand=False)
            self._host_nodes[key] = node
        return node

    def _add_path_leaf(self, evt: SubnetEvent) -> None:
        color, icon = STATUS_STYLE.get(evt.status, ("#888888", "?"))
        label = Text()
        label.append(f"{icon} ", style=color)
        label.append(evt.dest, style=color)
        if evt.status == TuiPathStatus.COMPLETE:
            label.append(f"  {len(evt.hops)} hops", style="#888888")
        else:
            label.append(f"  {evt.status.value}", style="#ffcc00 italic")
        self._host_node(evt.subnet, evt.source).add_leaf(label)

    def _label_partition(self, evt: SubnetEvent) -> None:
        node = self._partition_node(evt.subnet, evt.partition)
        label = Text()
        label.append(f"[{evt.partition_index}] ", style="#555555")
        label.append(f"'{evt.partition}'", style="bold")
        label.append(f"  {len(evt.members)} hosts", style="#888888")
        node.set_label(label)

    def _label_subnet_done(self, evt: SubnetEvent) -> None:
        node = self._subnet_nodes.get(evt.subnet)
        if node is None:
            return
        color, icon = ("#00ff88", "✓") if not evt.paths_missing else ("#ffcc00", "⚠")
        label = Text()
        label.append(f"{icon} ", style=color)
        label.append(evt.subnet, style="bold " + color)
        label.append(f"  {evt.nodes} nodes {evt.links} links", style="#888888")
        label.append(f"  {evt.paths_complete} paths", style="#888888")
        if evt.paths_missing:
            label.append(f"  {evt.paths_missing} no route", style="#ffcc00 italic")
        node.set_label(label)

    # ── Log pane ────────────────────────────────────────────────────────

    def _write_log_lines(self, evt: SubnetEvent, now: datetime) -> None:
        log = self.query_one("#log-view", RichLog)
        ts = now.strftime("%H:%M:%S")
        for line in self._get_lines_for_level(evt):
            log.write(Text.from_markup(f"[#555555]{ts}[/] {line}"))

    def _get_lines_for_level(self, evt: SubnetEvent) -> list[str]:
        if self._log_level == LogLevel.DEBUG:
            return evt.log_debug or evt.log_verbose or evt.log_basic
        elif self._log_level == LogLevel.VERBOSE:
            return evt.log_verbose or evt.log_basic
        return evt.log_basic

    def _rebuild_log(self) -> None:
        log = self.query_one("#log-view", RichLog)
        log.clear()
        for evt, ts in self._all_logs:
            ts_str = ts.strftime("%H:%M:%S")
            for line in self._get_lines_for_level(evt):
                log.write(Text.from_markup(f"[#555555]{ts_str}[/] {line}"))

    # ── Status bar ──────────────────────────────────────────────────────

    def _update_status(self) -> None:
        bar = self.query_one("#status-bar", StatusBar)
        elapsed = (datetime.now() - self._start).total_seconds()
        level_str = self._log_level.value
        parts = []
        for key in ("basic", "verbose", "debug"):
            if level_str == key:
                parts.append(f"[bold]{key[0]}[/bold]{key[1:]}")
            else:
                parts.append(key)
        level_hints = "  ".join(parts)

        if self._run_done and self._result:
            r = self._result
            health = "[#00ff88]✓ DONE[/]" if r.ok else "[#ff4444]✗ FAILED[/]"
            bar.update(Text.from_markup(
                f"  {health} │ {r.subnets} subnets │ "
                f"{r.paths_complete} paths │ {r.paths_missing} no route │ "
                f"{r.duration:.1f}s │ {level_hints} │ q:quit"
            ))
        else:
            bar.update(Text.from_markup(
                f"  [#00d4ff]⟳[/] {self._current_subnet or '-'} │ "
                f"{self._paths_complete}/{self._paths_seen} paths │ {elapsed:.0f}s │ "
                f"{level_hints} │ q:quit"
            ))

    # ── Key bindings ────────────────────────────────────────────────────

    def action_log_basic(self) -> None:
        self._log_level = LogLevel.BASIC
        self._rebuild_log()
        self._update_status()

    def action_log_verbose(self) -> None:
        self._log_level = LogLevel.VERBOSE
        self._rebuild_log()
        self._update_status()

    def action_log_debug(self) -> None:
        self._log_level = LogLevel.DEBUG
        self._rebuild_log()
        self._update_status()

    def action_quit(self) -> None:
        self.exit()


def main(argv: Optional[list[str]] = None):
    import argparse

    parser = argparse.ArgumentParser(prog="fabtrace-tui", description="fabtrace TUI")
    parser.add_argument("input_dir")
    parser.add_argument("--output-dir", default=None,
                        help="Also write IB-<subnet>-fabric.json files here")
    parser.add_argument("--hwloc-dir", default=None)
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--log", default=None)
    args = parser.parse_args(argv)

    from .extract import ExtractConfig
    config = ExtractConfig(
        input_dir=args.input_dir, output_dir=args.output_dir,
        hwloc_dir=args.hwloc_dir, log_file=args.log, debug=args.debug,
    )
    app = FabTraceApp(config=config)
    app.run()


if __name__ == "__main__":
    main()
