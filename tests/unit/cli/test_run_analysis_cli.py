import copy
import json

import pytest
import yaml

from pipegap.cli.run_analysis import main
from pipegap.utils.constants import (
    EXIT_ANALYSIS_ABORTED,
    EXIT_COMPLETE,
    EXIT_INVALID_PATH,
    EXIT_UNRESOLVED_GAPS,
)


def _write_yaml(path, payload):
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return str(path)


def _stage(component_id, reads=(), writes=()):
    return {"id": component_id, "role": "generator", "reads": list(reads), "writes": list(writes),
            "passthrough": [], "capabilities": []}


@pytest.fixture
def chain_file(tmp_path, grounding_chain_document):
    return _write_yaml(tmp_path / "chain.yaml", grounding_chain_document)


@pytest.fixture
def fixed_chain_file(tmp_path, grounding_chain_document):
    doc = copy.deepcopy(grounding_chain_document)
    doc["components"][1]["passthrough"] = ["docs"]
    return _write_yaml(tmp_path / "chain_fixed.yaml", doc)


class TestExitCodes:

    def test_gaps_remaining(self, chain_file, capsys):
        assert main([chain_file]) == EXIT_UNRESOLVED_GAPS
        out = capsys.readouterr().out
        assert "ANALYSIS RESULT: NEEDS_ITERATION" in out
        assert "STRIPPED_GROUNDING" in out

    def test_clean_topology_is_complete(self, fixed_chain_file, capsys):
        assert main([fixed_chain_file]) == EXIT_COMPLETE
        assert "ANALYSIS RESULT: COMPLETE" in capsys.readouterr().out

    def test_updated_topology_closes_gaps(self, chain_file, fixed_chain_file, capsys):
        assert main([chain_file, "--updated", fixed_chain_file]) == EXIT_COMPLETE
        assert "Closed:          1" in capsys.readouterr().out

    def test_fix_document_applied(self, tmp_path, chain_file):
        fixes = _write_yaml(tmp_path / "fixes.yaml", {"fixes": [{
            "target": {"from": "responder", "to": "validator"},
            "action": "ADD",
            "subject": "docs",
        }]})
        assert main([chain_file, "--fixes", fixes]) == EXIT_COMPLETE

    def test_flagged_fix_is_reported(self, tmp_path, chain_file, capsys):
        fixes = _write_yaml(tmp_path / "fixes.yaml", [{
            "target": "ghost", "action": "ADD", "subject": "docs",
        }])
        assert main([chain_file, "--fixes", fixes]) == EXIT_UNRESOLVED_GAPS
        assert "FLAGGED fix:" in capsys.readouterr().out

    def test_missing_path(self, tmp_path, capsys):
        assert main([str(tmp_path / "absent.yaml")]) == EXIT_INVALID_PATH
        assert "INVALID_PATH" in capsys.readouterr().err

    def test_missing_updated_path(self, tmp_path, chain_file):
        assert main([chain_file, "--updated", str(tmp_path / "absent.yaml")]) == EXIT_INVALID_PATH

    def test_rejected_document(self, tmp_path, grounding_chain_document, capsys):
        grounding_chain_document["transitions"].append(["validator", "ghost"])
        path = _write_yaml(tmp_path / "bad.yaml", grounding_chain_document)
        assert main([path]) == EXIT_ANALYSIS_ABORTED
        assert "TOP-04" in capsys.readouterr().err

    def test_divergence_aborts(self, tmp_path, capsys):
        doc = {
            "fields": [{"id": "f", "cardinal": True}],
            "components": [
                _stage("a", writes=["f"]), _stage("b"), _stage("c"), _stage("d", reads=["f"]),
            ],
            "transitions": [["a", "b"], ["b", "c"], ["c", "d"]],
        }
        path = _write_yaml(tmp_path / "long.yaml", doc)
        assert main([path, "--max-iterations", "2"]) == EXIT_ANALYSIS_ABORTED
        assert "ANALYSIS_ABORTED" in capsys.readouterr().err

    def test_updated_and_fixes_are_exclusive(self, chain_file):
        with pytest.raises(SystemExit):
            main([chain_file, "--updated", chain_file, "--fixes", chain_file])

    @pytest.mark.parametrize("cap", ["0", "-3"])
    def test_non_positive_iteration_cap_is_a_usage_error(self, chain_file, capsys, cap):
        with pytest.raises(SystemExit) as info:
            main([chain_file, "--max-iterations", cap])
        assert info.value.code == 2
        assert "--max-iterations must be >= 1" in capsys.readouterr().err


class TestReports:

    def test_reports_written(self, tmp_path, chain_file):
        out_dir = tmp_path / "runs"
        main([chain_file, "--output-dir", str(out_dir)])
        names = sorted(p.name for p in out_dir.iterdir())
        assert len(names) == 2
        assert any("_ANALYZE_" in n for n in names)
        verify_report = next(p for p in out_dir.iterdir() if "_VERIFY_" in p.name)
        payload = json.loads(verify_report.read_text(encoding="utf-8"))
        assert payload["verification"]["status"] == "NEEDS_ITERATION"

    def test_nothing_written_without_output_dir(self, tmp_path, chain_file):
        main([chain_file])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["chain.yaml"]

    def test_low_confidence_warning_on_stderr(self, tmp_path, grounding_chain_document, capsys):
        grounding_chain_document["components"][0]["confidence"] = 0.1
        path = _write_yaml(tmp_path / "shaky.yaml", grounding_chain_document)
        main([path])
        assert "WARNING [TOP-08]" in capsys.readouterr().err
