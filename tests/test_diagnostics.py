import json
import logging
from datetime import datetime, timedelta

from fabtrace.diagnostics import (
    FileDiagnostic, FileKind, LineRecord, ParseResult,
    SubnetDiagnostic, RunDiagnostic,
    parse_with_diagnostics, setup_logging,
    dump_subnet_summary, dump_subnet_detail, dump_run_summary,
)
from fabtrace.models import PathStatus


def test_parse_with_diagnostics_success():
    result, record = parse_with_diagnostics("f", 1, "x", lambda raw: "ok")
    assert result == "ok"
    assert record is None


def test_parse_with_diagnostics_no_match():
    result, record = parse_with_diagnostics("f", 3, "junk\n", lambda raw: None, "regex (discovery)")
    assert result is None
    assert record.parse_result == ParseResult.NO_MATCH
    assert record.raw == "junk"
    assert record.lineno == 3
    assert record.parser_used == "regex (discovery)"


def test_parse_with_diagnostics_exception():
    def broken(raw):
        raise KeyError("XX")

    result, record = parse_with_diagnostics("f", 1, "x", broken)
    assert result is None
    assert record.parse_result == ParseResult.EXCEPTION
    assert "KeyError" in record.detail


def _subnet_diag():
    diag = SubnetDiagnostic(subnet="fe80:0000:0000:0000")
    f = FileDiagnostic(path="ib-subnet.txt", kind=FileKind.DISCOVERY, lines_read=3, records=1)
    f.skipped.append(LineRecord("ib-subnet.txt", 1, "#", ParseResult.IGNORED))
    f.skipped.append(LineRecord("ib-subnet.txt", 2, "junk", ParseResult.NO_MATCH,
                                detail="Line matches no known record pattern"))
    diag.files.append(f)
    diag.path_status = {PathStatus.COMPLETE: 2, PathStatus.LOOP: 1}
    diag.partitions = ["node"]
    return diag


def test_subnet_counts():
    diag = _subnet_diag()
    assert diag.paths_complete == 2
    assert diag.paths_missing == 1
    assert diag.malformed_lines() == 1


def test_run_to_dict_is_json_serializable(tmp_path):
    start = datetime(2024, 1, 1, 12, 0, 0)
    run = RunDiagnostic(input_dir="in", output_dir="out", started_at=start,
                        completed_at=start + timedelta(seconds=2))
    run.subnets.append(_subnet_diag())
    assert run.duration == 2.0

    path = tmp_path / "diag.json"
    run.dump_json(str(path))
    data = json.loads(path.read_text())
    assert data["summary"] == {
        "subnets": 1, "paths_complete": 2, "paths_missing": 1, "malformed_lines": 1,
    }
    assert data["subnets"][0]["summary"]["paths"] == {"complete": 2, "loop": 1}
    assert data["subnets"][0]["files"][0]["skipped"][1]["parse_result"] == "no-match"


def test_text_dumps():
    diag = _subnet_diag()
    assert "paths 2 ✓ 1 ✗" in dump_subnet_summary(diag)
    detail = dump_subnet_detail(diag)
    assert "line 2: no-match" in detail
    assert "no route directory" in detail
    assert "'node'" in detail

    run = RunDiagnostic(input_dir="in")
    run.subnets.append(diag)
    summary = dump_run_summary(run)
    assert "Subnets: 1" in summary
    # Never completed, so no elapsed time
    assert summary.endswith("| ?")


def test_setup_logging_handlers(tmp_path):
    log_file = tmp_path / "fabtrace.log"
    logger = setup_logging(log_file=str(log_file), tui=True)
    try:
        assert [type(h) for h in logger.handlers] == [logging.FileHandler]
        logger.getChild("ingest").debug("hello")
        for h in logger.handlers:
            h.flush()
        assert "fabtrace.ingest: hello" in log_file.read_text()

        logger = setup_logging(verbose=True)
        assert [h.level for h in logger.handlers] == [logging.INFO]
        logger = setup_logging()
        assert [h.level for h in logger.handlers] == [logging.WARNING]
    finally:
        for h in logger.handlers:
            h.close()
        logger.handlers.clear()
