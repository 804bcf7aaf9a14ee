"""
Tests for the worker registry and orchestrator.
"""
import json

import pytest

from apoios.core.domain_models import RunError, WorkerRunResult, WorkerRunStats
from apoios.workers.registry import (
    DIRECT_SOURCE_DESCRIPTORS,
    IngestionRegistry,
    NATIONAL_DIRECT_IDS,
    default_workers,
    expand_source,
    get_available_sources,
    is_valid_source,
    normalize_stats,
    normalize_worker_result,
    summarize,
    to_number,
)


def _ok_worker(context):
    return WorkerRunResult(success=True, stats=WorkerRunStats(found=3, new=2, skipped=1, duration="1.50"))


def _dict_worker(context):
    return {"stats": {"found": "4", "new": 4}}


def _raising_worker(context):
    raise RuntimeError("site layout changed")


class TestSourceExpansion:
    """Tests for source ids and groups."""

    def test_direct_source(self):
        assert expand_source("fundo-ambiental") == ["fundo-ambiental"]

    def test_groups_in_declared_order(self):
        assert expand_source("core-national") == list(NATIONAL_DIRECT_IDS)
        assert expand_source("municipal") == ["municipios-portugal", "cascais"]
        assert expand_source("all") == list(NATIONAL_DIRECT_IDS) + ["municipios-portugal", "cascais"]

    def test_alias(self):
        assert expand_source("core-nacional") == expand_source("core-national")

    def test_unknown_source(self):
        with pytest.raises(ValueError):
            expand_source("nao-existe")

    def test_is_valid_source(self):
        assert is_valid_source("cascais")
        assert is_valid_source("core-nacional")
        assert not is_valid_source("nao-existe")

    def test_available_sources_lists_direct_then_groups(self):
        ids = [d["id"] for d in get_available_sources()]
        assert ids[:len(DIRECT_SOURCE_DESCRIPTORS)] == [d.id for d in DIRECT_SOURCE_DESCRIPTORS]
        assert ids[-3:] == ["core-national", "municipal", "all"]

    def test_every_direct_source_has_a_worker(self):
        assert set(default_workers()) == {d.id for d in DIRECT_SOURCE_DESCRIPTORS}


class TestNormalization:
    """Tests for result normalization."""

    @pytest.mark.parametrize("value,expected", [
        (5, 5),
        ("12", 12),
        ("2.5", 2),
        (3.9, 3),
        (None, 0),
        ("", 0),
        ("abc", 0),
        (True, 0),
        (float("inf"), 0),
        (float("nan"), 0),
        ([1], 0),
    ])
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    def test_missing_stats_become_zero(self):
        stats = normalize_stats(None)
        assert stats.to_dict() == {
            "found": 0, "new": 0, "updated": 0, "skipped": 0, "errors": 0, "duration": "0.00",
        }

    def test_fractional_stats_become_integers(self):
        stats = normalize_stats({"found": "2.5", "new": 1.7, "errors": "3"})
        assert (stats.found, stats.new, stats.errors) == (2, 1, 3)
        assert all(isinstance(v, int) for v in (stats.found, stats.new, stats.updated, stats.skipped, stats.errors))

    def test_numeric_duration_formatted(self):
        assert normalize_stats({"duration": 1.2345}).duration == "1.23"
        assert normalize_stats({"duration": "9.99"}).duration == "9.99"

    def test_worker_result_errors_serialized(self):
        output = WorkerRunResult(
            success=True,
            stats=WorkerRunStats(found=1, errors=1),
            errors=[RunError(error="timeout", title="Aviso 1", url="https://x.pt/a")],
        )
        result = normalize_worker_result("fundo-ambiental", output)
        assert result.errors == [{"title": "Aviso 1", "url": "https://x.pt/a", "error": "timeout"}]

    def test_mapping_success_defaults_to_true(self):
        result = normalize_worker_result("x", {"stats": {"found": 2}})
        assert result.success is True
        assert result.stats.found == 2

    def test_non_mapping_output(self):
        result = normalize_worker_result("x", None)
        assert result.success is True
        assert result.stats.found == 0


class TestIngestionRegistry:
    """Tests for IngestionRegistry.run."""

    def test_failing_worker_does_not_stop_the_batch(self, context):
        registry = IngestionRegistry(
            context,
            workers={"recuperar-portugal": _raising_worker, "portugal-2030": _ok_worker},
            record_runs=False,
        )

        results = [registry.run_worker(s) for s in ("recuperar-portugal", "portugal-2030")]

        assert results[0].success is False
        assert results[0].error == "site layout changed"
        assert results[0].stats.errors == 1
        assert results[1].success is True
        assert results[1].stats.new == 2

    def test_missing_worker(self, context):
        registry = IngestionRegistry(context, workers={}, record_runs=False)
        result = registry.run_worker("cascais")
        assert result.success is False
        assert result.stats.errors == 1

    def test_group_run_uses_every_member(self, context):
        workers = {source_id: _dict_worker for source_id in expand_source("municipal")}
        registry = IngestionRegistry(context, workers=workers, record_runs=False)

        results = registry.run("municipal")

        assert [r.source for r in results] == ["municipios-portugal", "cascais"]
        assert all(r.stats.found == 4 for r in results)

    def test_unknown_group(self, context):
        registry = IngestionRegistry(context, workers={}, record_runs=False)
        with pytest.raises(ValueError):
            registry.run("nao-existe")

    def test_runs_are_recorded(self, context):
        registry = IngestionRegistry(
            context, workers={"cascais": _ok_worker, "fundo-ambiental": _raising_worker}
        )

        registry.run_worker("cascais")
        registry.run_worker("fundo-ambiental")

        runs = {r["source"]: r for r in context.run_log.recent()}
        assert runs["cascais"]["status"] == "SUCCESS"
        assert runs["cascais"]["items_found"] == 3
        assert runs["cascais"]["items_inserted"] == 2
        assert runs["fundo-ambiental"]["status"] == "FAILED"
        assert json.loads(runs["fundo-ambiental"]["errors_json"]) == [{"error": "site layout changed"}]

    def test_run_log_failure_is_not_fatal(self, context, monkeypatch):
        class BrokenLog:
            def start(self, source):
                raise RuntimeError("database locked")

        monkeypatch.setattr(type(context), "run_log", property(lambda self: BrokenLog()))
        registry = IngestionRegistry(context, workers={"cascais": _ok_worker})

        assert registry.run_worker("cascais").success is True


class TestSummarize:
    """Tests for summarize."""

    def test_totals(self):
        results = [
            normalize_worker_result("a", _ok_worker(None)),
            normalize_worker_result("b", {"stats": {"found": 1, "errors": 2, "duration": "0.25"}}),
        ]
        total = summarize(results)
        assert (total.found, total.new, total.skipped, total.errors) == (4, 2, 1, 2)
        assert total.duration == "1.75"
