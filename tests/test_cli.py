"""
Tests for the run_ingestion command line entry point.
"""
import json
from unittest.mock import patch

from apoios.core.domain_models import NormalizedResult, WorkerRunStats
from apoios.workers.registry import failed_result

import run_ingestion


class TestCli:
    """Tests for run_ingestion.main."""

    def test_status_lists_sources(self, capsys):
        assert run_ingestion.main(["--status"]) == run_ingestion.EXIT_OK

        out = capsys.readouterr().out
        assert "fundo-ambiental" in out
        assert "core-national" in out

    def test_invalid_source(self, capsys):
        assert run_ingestion.main(["nao-existe"]) == run_ingestion.EXIT_INVALID_SOURCE
        assert "Invalid source" in capsys.readouterr().err

    def test_success_as_json(self, tmp_path, capsys):
        result = NormalizedResult(source="cascais", success=True, stats=WorkerRunStats(found=2, new=2), errors=[])

        with patch("run_ingestion.IngestionRegistry.run_worker", return_value=result) as run_worker:
            code = run_ingestion.main(["cascais", "--json", "--db", str(tmp_path / "cli.db")])

        assert code == run_ingestion.EXIT_OK
        run_worker.assert_called_once_with("cascais")
        output = json.loads(capsys.readouterr().out)
        assert output == [{
            "source": "cascais",
            "success": True,
            "stats": {"found": 2, "new": 2, "updated": 0, "skipped": 0, "errors": 0, "duration": "0.00"},
            "errors": [],
        }]
        assert (tmp_path / "cli.db").exists()

    def test_group_failure_exit_code(self, tmp_path, capsys):
        def run_worker(source_id):
            if source_id == "cascais":
                return failed_result(source_id, "boom")
            return NormalizedResult(source=source_id, success=True, stats=WorkerRunStats())

        with patch("run_ingestion.IngestionRegistry.run_worker", side_effect=run_worker):
            code = run_ingestion.main(["municipal", "--db", str(tmp_path / "cli.db")])

        assert code == run_ingestion.EXIT_FAILED
        out = capsys.readouterr().out
        assert "INGESTION COMPLETE" in out
        assert "boom" in out
