from fabtrace.models import NodeType, DestinationKind
from fabtrace.parsers import (
    DiscoveryParser, RouteParser, LinkRecord, PortRecord,
    split_description, subnet_from_filename, route_file_index, route_dirname,
    get_parser, get_parser_name, PARSE_DISCOVERY, PARSE_ROUTE_ENTRY,
)


LINK = ("CA    11  1 0x0002c903000e6c09 4x QDR - SW     1  7 0x0002c90200451b68 "
        "( 'node-001 HCA-1' - 'sw-leaf-1' )")


def test_parse_link_line():
    rec = DiscoveryParser.parse_link(LINK)
    assert isinstance(rec, LinkRecord)
    assert rec.src_type == NodeType.HOST
    assert rec.src_lid == 11
    assert rec.src_port == 1
    assert rec.src_id == "0002:c903:000e:6c09"
    assert rec.width == "4x"
    assert rec.speed == "QDR"
    assert rec.dest_type == NodeType.SWITCH
    assert rec.dest_port == 7
    assert rec.dest_id == "0002:c902:0045:1b68"
    assert rec.src_desc == "'node-001 HCA-1'"
    assert rec.dest_desc.strip() == "'sw-leaf-1'"


def test_unlinked_port_is_port_record():
    rec = DiscoveryParser.parse_line("SW     1 36 0x0002c90200451b68 4x SDR")
    assert isinstance(rec, PortRecord)
    assert rec.type == NodeType.SWITCH
    assert rec.port == 36


def test_linked_line_prefers_link_form():
    # Linked lines also satisfy the unlinked pattern
    assert isinstance(DiscoveryParser.parse_line(LINK), LinkRecord)


def test_garbage_line_matches_nothing():
    assert DiscoveryParser.parse_line("switchguid=0x0002c90200451b68(2c90200451b68)") is None


def test_ignorable_lines():
    assert DiscoveryParser.is_ignorable("DR path slid 0; dlid 0; 0,1")
    assert DiscoveryParser.is_ignorable("# Topology file")
    assert DiscoveryParser.is_ignorable("   \n")
    assert not DiscoveryParser.is_ignorable(LINK)


def test_split_description_uses_last_separator():
    left, right = split_description("'a - b' - 'c'")
    assert left == "'a - b'"
    assert right == "'c'"
    assert split_description("no separator") == ("", "")


def test_route_header_and_entry():
    header = RouteParser.parse_header(
        "Unicast lids [0x0-0x1d1] of switch DR path slid 0; dlid 0; 0,1 "
        "guid 0x0002c90200451b68 (sw-leaf-1):"
    )
    assert header.switch_id == "0002:c902:0045:1b68"

    entry = RouteParser.parse_entry(
        "0x001a 017 : (Channel Adapter portguid 0x0002c903000e6c09: 'node-001 HCA-1')"
    )
    assert entry.dest_lid == 0x1a
    assert entry.port == 17
    assert entry.kind == DestinationKind.CHANNEL_ADAPTER
    assert entry.dest_id == "0002:c903:000e:6c09"

    sw = RouteParser.parse_entry("0x0002 003 : (Switch portguid 0x00000000000000a2: 'sw-leaf-2')")
    assert sw.kind == DestinationKind.SWITCH


def test_route_column_heading_is_not_an_entry():
    assert RouteParser.parse_entry("  Lid  Out   Destination") is None
    assert RouteParser.parse_header("0x0002 003 : (Switch portguid 0x00000000000000a2: 'x')") is None


def test_file_names():
    assert subnet_from_filename("ib-subnet-fe80:0000:0000:0000.txt") == "fe80:0000:0000:0000"
    assert subnet_from_filename("ib-subnet-fe80.txt") is None
    assert subnet_from_filename("ib-subnet-fe80:0000:0000:0000.txt.bak") is None
    assert route_dirname("fe80:0000:0000:0000") == "ibroutes-fe80:0000:0000:0000"
    assert route_file_index("ibroute-fe80:0000:0000:0000-12.txt") == 12
    assert route_file_index("ibroute-fe80:0000:0000:0000-.txt") == 0
    assert route_file_index("README") is None


def test_parser_registry():
    assert get_parser(PARSE_DISCOVERY) is DiscoveryParser.parse_line
    assert get_parser("nonexistent") is None
    assert get_parser_name(PARSE_ROUTE_ENTRY) == "regex (route_entry)"
    assert get_parser_name("nonexistent") == "none"
