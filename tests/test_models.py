import pytest

from fabtrace.models import (
    canonical_id, extract_hostname, extract_partition_name,
    compute_gbits, lane_count, UNKNOWN_SPEED_GBITS,
    Node, NodeType, Edge, PhysicalLink, RoutingTable, RouteEntry,
)


def test_canonical_id():
    assert canonical_id("0002c903000e6c09") == "0002:c903:000e:6c09"
    assert canonical_id("0x0002C903000E6C09") == "0002:c903:000e:6c09"


@pytest.mark.parametrize("description,hostname", [
    ("'node-001 HCA-1'", "node-001"),
    ("node-001 HCA-1", "node-001"),
    ("'login3'", "login3"),
    ("''", ""),
    ("'Node-1'", ""),
])
def test_extract_hostname(description, hostname):
    assert extract_hostname(description) == hostname


@pytest.mark.parametrize("hostname,partition", [
    ("node-0012", "node"),
    ("gpu-a-7", "gpu-a"),
    ("login3", "login"),
    ("42", ""),
    ("ANONYMOUS-0", "ANONYMOUS"),
])
def test_extract_partition_name(hostname, partition):
    assert extract_partition_name(hostname) == partition


def test_lane_count():
    assert lane_count("4x") == 4
    assert lane_count("12x") == 12
    assert lane_count("x") == 0
    assert lane_count("") == 0


def test_compute_gbits_table():
    assert compute_gbits("SDR", "4x") == pytest.approx(8.0)
    assert compute_gbits("DDR", "4x") == pytest.approx(16.0)
    assert compute_gbits("QDR", "4x") == pytest.approx(32.0)
    assert compute_gbits("FDR10", "4x") == pytest.approx(4 * 10 * 64 / 66)
    assert compute_gbits("FDR", "4x") == pytest.approx(4 * 14.0625 * 64 / 66)
    assert compute_gbits("EDR", "4x") == pytest.approx(4 * 25 * 64 / 66)


def test_compute_gbits_unknown_speed_and_width():
    assert compute_gbits("HDR", "4x") == UNKNOWN_SPEED_GBITS
    assert compute_gbits("", "4x") == UNKNOWN_SPEED_GBITS
    assert compute_gbits("QDR", "x") == 0.0


def _node_with_ports():
    node = Node(id="0000:0000:0000:00a1", lid=1, type=NodeType.SWITCH)
    l1 = PhysicalLink(id=0, ports=(1, 1), parent=node.id, dest="b")
    l3 = PhysicalLink(id=1, ports=(3, 1), parent=node.id, dest="c")
    node.ports = [l1, None, l3]
    node.edges["c"] = Edge(source=node.id, dest="c", link_ports=[2])
    node.edges["b"] = Edge(source=node.id, dest="b", link_ports=[0])
    return node, l1, l3


def test_node_link_at_is_one_based():
    node, l1, l3 = _node_with_ports()
    assert node.link_at(1) is l1
    assert node.link_at(2) is None
    assert node.link_at(3) is l3
    assert node.link_at(0) is None
    assert node.link_at(4) is None
    assert node.links() == [l1, l3]


def test_first_link_follows_edge_insertion_order():
    node, _, l3 = _node_with_ports()
    assert node.first_link() is l3
    assert Node(id="x", lid=0, type=NodeType.HOST).first_link() is None


def test_routing_table_egress_port():
    table = RoutingTable(switch="s")
    table.entries["h"] = RouteEntry(dest="h", port=5)
    assert table.egress_port("h") == 5
    assert table.egress_port("missing") is None
