import logging

from conftest import SUBNET, H1, H2, H3, S1, S2, ROUTE_LINES_S1, ROUTE_LINES_S2, load_routes, write_input_dir
from fabtrace.diagnostics import ParseResult
from fabtrace.models import DestinationKind
from fabtrace.routes import RouteLoader, find_route_dir, read_routes


def test_tables_keyed_by_switch():
    loader = load_routes(ROUTE_LINES_S1, ROUTE_LINES_S2)
    assert set(loader.tables) == {S1, S2}
    s1 = loader.tables[S1]
    assert s1.egress_port(H1) == 1
    assert s1.egress_port(H2) == 2
    assert s1.egress_port(H3) == 3
    assert s1.egress_port(S2) == 3
    assert s1.entries[H1].dest_lid == 0x0b
    assert s1.entries[S2].kind == DestinationKind.SWITCH
    assert loader.tables[S2].egress_port(H2) is None


def test_non_entry_lines_are_ignored():
    loader = load_routes(ROUTE_LINES_S1)
    diag = loader.files[0]
    assert diag.records == 6          # header + 5 entries
    assert [r.parse_result for r in diag.skipped] == [ParseResult.IGNORED] * 3
    assert not diag.aborted


def test_first_duplicate_entry_wins():
    lines = ROUTE_LINES_S1 + [
        "0x000b 009 : (Channel Adapter portguid 0x0000000000000011: 'node-001 HCA-1')",
    ]
    loader = load_routes(lines)
    assert loader.tables[S1].egress_port(H1) == 1
    assert loader.duplicates == 1


def test_entry_before_header_aborts_file_only(caplog):
    orphan = [
        "0x000b 001 : (Channel Adapter portguid 0x0000000000000011: 'node-001 HCA-1')",
    ] + ROUTE_LINES_S2
    with caplog.at_level(logging.ERROR, logger="fabtrace"):
        loader = load_routes(orphan, ROUTE_LINES_S1)

    bad, good = loader.files
    assert bad.aborted
    assert bad.malformed()[0].parse_result == ParseResult.ORPHAN
    # Nothing after the orphan line was read from that file
    assert S2 not in loader.tables
    assert not good.aborted
    assert S1 in loader.tables
    assert "Malformed route file" in caplog.text


def test_second_header_starts_new_table():
    loader = load_routes(ROUTE_LINES_S1 + ROUTE_LINES_S2)
    assert set(loader.tables) == {S1, S2}
    assert loader.tables[S2].egress_port(H1) == 3


def test_route_dir_read_in_index_order(tmp_path):
    route_dir = tmp_path / f"ibroutes-{SUBNET}"
    route_dir.mkdir()
    (route_dir / f"ibroute-{SUBNET}-10.txt").write_text("\n".join(ROUTE_LINES_S2) + "\n")
    (route_dir / f"ibroute-{SUBNET}-2.txt").write_text("\n".join(ROUTE_LINES_S1) + "\n")
    (route_dir / "notes.txt").write_text("ignored\n")

    loader = RouteLoader()
    assert loader.read_route_dir(route_dir) == 2
    assert [f.path.rsplit("-", 1)[1] for f in loader.files] == ["2.txt", "10.txt"]


def test_read_routes(tmp_path):
    root = write_input_dir(tmp_path / "in")
    loader = read_routes(root, SUBNET)
    assert set(loader.tables) == {S1, S2}
    assert len(loader.files) == 2


def test_missing_route_dir_is_not_an_error(tmp_path, caplog):
    root = write_input_dir(tmp_path / "in", routes=None)
    assert find_route_dir(root, SUBNET) is None
    with caplog.at_level(logging.INFO, logger="fabtrace"):
        assert read_routes(root, SUBNET) is None
    assert f"No route directory found for subnet {SUBNET}" in caplog.text


def test_route_path_that_is_a_file_is_ignored(tmp_path):
    (tmp_path / f"ibroutes-{SUBNET}").write_text("")
    assert find_route_dir(tmp_path, SUBNET) is None
