import sys
from pathlib import Path

import pytest

# Ensure repository root is on sys.path so 'fabtrace' imports without install
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fabtrace.ingest import FabricBuilder, set_reverse_edges
from fabtrace.routes import RouteLoader
from fabtrace.walker import PathWalker


SUBNET = "fe80:0000:0000:0000"

# Two leaf switches joined by two cables; node-001/node-002 on sw-leaf-1,
# gpu-001 on sw-leaf-2.
H1 = "0000:0000:0000:0011"
H2 = "0000:0000:0000:0012"
H3 = "0000:0000:0000:0013"
S1 = "0000:0000:0000:00a1"
S2 = "0000:0000:0000:00a2"

DISCOVERY_LINES = [
    "#",
    "# Topology file: generated by ibnetdiscover -p",
    "#",
    "SW     1  1 0x00000000000000a1 4x QDR - CA    11  1 0x0000000000000011 ( 'sw-leaf-1' - 'node-001 HCA-1' )",
    "SW     1  2 0x00000000000000a1 4x QDR - CA    12  1 0x0000000000000012 ( 'sw-leaf-1' - 'node-002 HCA-1' )",
    "SW     1  3 0x00000000000000a1 4x QDR - SW     2  3 0x00000000000000a2 ( 'sw-leaf-1' - 'sw-leaf-2' )",
    "SW     1  4 0x00000000000000a1 4x QDR - SW     2  4 0x00000000000000a2 ( 'sw-leaf-1' - 'sw-leaf-2' )",
    "SW     1 36 0x00000000000000a1 4x SDR",
    "",
    "SW     2  1 0x00000000000000a2 4x QDR - CA    13  1 0x0000000000000013 ( 'sw-leaf-2' - 'gpu-001 HCA-1' )",
    "SW     2  3 0x00000000000000a2 4x QDR - SW     1  3 0x00000000000000a1 ( 'sw-leaf-2' - 'sw-leaf-1' )",
    "SW     2  4 0x00000000000000a2 4x QDR - SW     1  4 0x00000000000000a1 ( 'sw-leaf-2' - 'sw-leaf-1' )",
    "DR path slid 0; dlid 0; 0,1",
    "CA    11  1 0x0000000000000011 4x QDR - SW     1  1 0x00000000000000a1 ( 'node-001 HCA-1' - 'sw-leaf-1' )",
    "CA    12  1 0x0000000000000012 4x QDR - SW     1  2 0x00000000000000a1 ( 'node-002 HCA-1' - 'sw-leaf-1' )",
    "CA    13  1 0x0000000000000013 4x QDR - SW     2  1 0x00000000000000a2 ( 'gpu-001 HCA-1' - 'sw-leaf-2' )",
]

ROUTE_LINES_S1 = [
    "Unicast lids [0x0-0xd] of switch DR path slid 0; dlid 0; 0 guid 0x00000000000000a1 (sw-leaf-1):",
    "  Lid  Out   Destination",
    "       Port     Info ",
    "0x0001 000 : (Switch portguid 0x00000000000000a1: 'sw-leaf-1')",
    "0x0002 003 : (Switch portguid 0x00000000000000a2: 'sw-leaf-2')",
    "0x000b 001 : (Channel Adapter portguid 0x0000000000000011: 'node-001 HCA-1')",
    "0x000c 002 : (Channel Adapter portguid 0x0000000000000012: 'node-002 HCA-1')",
    "0x000d 003 : (Channel Adapter portguid 0x0000000000000013: 'gpu-001 HCA-1')",
    "5 valid lids dumped ",
]

# sw-leaf-2 has no entry for node-002
ROUTE_LINES_S2 = [
    "Unicast lids [0x0-0xd] of switch DR path slid 0; dlid 0; 0,1 guid 0x00000000000000a2 (sw-leaf-2):",
    "  Lid  Out   Destination",
    "       Port     Info ",
    "0x0001 004 : (Switch portguid 0x00000000000000a1: 'sw-leaf-1')",
    "0x0002 000 : (Switch portguid 0x00000000000000a2: 'sw-leaf-2')",
    "0x000b 003 : (Channel Adapter portguid 0x0000000000000011: 'node-001 HCA-1')",
    "0x000d 001 : (Channel Adapter portguid 0x0000000000000013: 'gpu-001 HCA-1')",
    "4 valid lids dumped ",
]


def build_topology(lines=DISCOVERY_LINES, subnet=SUBNET):
    builder = FabricBuilder(subnet)
    builder.ingest_lines(lines, source="ib-subnet.txt")
    return builder, builder.finish()


def load_routes(*files):
    loader = RouteLoader()
    for i, lines in enumerate(files, start=1):
        loader.ingest_lines(lines, source=f"ibroute-{i}.txt")
    return loader


def write_input_dir(root, subnet=SUBNET, discovery=DISCOVERY_LINES,
                    routes=(ROUTE_LINES_S1, ROUTE_LINES_S2)):
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    (root / f"ib-subnet-{subnet}.txt").write_text("\n".join(discovery) + "\n")
    if routes is not None:
        route_dir = root / f"ibroutes-{subnet}"
        route_dir.mkdir()
        for i, lines in enumerate(routes, start=1):
            (route_dir / f"ibroute-{subnet}-{i}.txt").write_text("\n".join(lines) + "\n")
    return root


@pytest.fixture
def topology():
    """(builder, fabric) with links resolved, no routes loaded."""
    return build_topology()


@pytest.fixture
def fabric():
    """Fully routed fabric: topology, tables and paths."""
    _, fab = build_topology()
    fab.routes = load_routes(ROUTE_LINES_S1, ROUTE_LINES_S2).tables
    fab.paths = PathWalker(fab.nodes, fab.routes).walk()
    set_reverse_edges(fab)
    return fab


@pytest.fixture
def input_dir(tmp_path):
    return write_input_dir(tmp_path / "in")
