"""
E2E — cenários de síntese do PipeCanvas.

Valida o sistema de ponta a ponta com gerador determinístico:
- dataset CSV versionado (tests/fixtures/data/customers.csv)
- config efetiva = defaults do pacote + overrides (tests/fixtures/config)
- loop gerar → validar → reparar
- registro no FileRunLedger (run.json, manifest.json, report.md, output.csv)
- replay da especificação aceita

Requisitos:
- pytest -q (sem rede, sem modelo de linguagem real)
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pipecanvas.api import replay, synthesize_sync
from pipecanvas.core.config.loader import load_config
from pipecanvas.core.config.settings import SynthesisSettings
from pipecanvas.core.errors import ErrorCategory
from pipecanvas.core.synthesis import FailureCategory, FinalStatus
from pipecanvas.core.tabular.csv_io import read_csv_path
from pipecanvas.core.tabular.value import TabularValue
from pipecanvas.core.traceability.manifest import load_manifest
from pipecanvas.ledger import FileRunLedger

from tests.fixtures.generators import ScriptedGenerator, make_spec

FIXTURES = Path(__file__).parents[1] / "fixtures"


def _settings() -> SynthesisSettings:
    local = FIXTURES / "config" / "config_e2e.yaml"
    return SynthesisSettings.from_config(load_config(local_path=str(local)))


def test_email_normalize_and_dedupe_scenario() -> None:
    dataset = TabularValue.from_rows(["email"], [{"email": "A@x.com"}, {"email": "a@x.com"}])
    gen = ScriptedGenerator(
        [
            make_spec(
                {"kind": "normalize-field", "field": "email", "op": "lowercase"},
                {"kind": "deduplicate", "key": "email"},
            )
        ]
    )
    report = synthesize_sync("normalize emails to lowercase and remove duplicates", dataset, gen)
    assert report.final_status == FinalStatus.SUCCESS
    assert report.iterations_used == 0
    assert report.output_sample.rows == [{"email": "a@x.com"}]
    assert [op.kind for op in report.specification.operations] == ["normalize-field", "deduplicate"]


def test_missing_column_is_single_runtime_error_at_its_index() -> None:
    dataset = TabularValue.from_rows(["email"], [{"email": "a@x.com"}])
    gen = ScriptedGenerator([make_spec({"kind": "sort", "by": "email"}, {"kind": "filter", "column": "phone", "op": "not_empty"})])
    report = synthesize_sync("keep rows with a phone", dataset, gen, max_iterations=1)
    assert report.failure_category == FailureCategory.VALIDATION_EXHAUSTED
    assert len(report.validation_errors) == 1
    err = report.validation_errors[0]
    assert err.category == ErrorCategory.RUNTIME
    assert err.operation_index == 1
    assert "phone" in err.message


def test_always_failing_generator_exhausts_two_repairs() -> None:
    dataset = TabularValue.from_rows(["email"], [{"email": "a@x.com"}])
    gen = ScriptedGenerator([make_spec({"kind": "select-columns", "columns": ["phone"]})])
    report = synthesize_sync("select phone", dataset, gen, max_iterations=2)
    assert report.final_status == FinalStatus.FAILED
    assert report.failure_category == FailureCategory.VALIDATION_EXHAUSTED
    assert report.iterations_used == 2
    assert gen.calls == 3


def test_customers_cleanup_end_to_end(tmp_path: Path) -> None:
    dataset = read_csv_path(FIXTURES / "data" / "customers.csv")
    assert dataset.row_count == 6

    first = make_spec(
        {"kind": "normalize-field", "field": "email", "op": ["trim", "lowercase"]},
        {"kind": "deduplicate", "key": "email", "order_by": "signup"},
        {"kind": "select-columns", "columns": ["customer_id", "mail", "plan"]},
    )
    repaired = make_spec(
        {"kind": "normalize-field", "field": "email", "op": ["trim", "lowercase"]},
        {"kind": "deduplicate", "key": "email", "order_by": "signup"},
        {"kind": "fill-missing", "column": "plan", "value": "basic"},
        {"kind": "cast-type", "column": "monthly_fee", "to": "number"},
        {"kind": "sort", "by": [{"column": "monthly_fee", "direction": "desc"}, "customer_id"]},
        {"kind": "select-columns", "columns": ["customer_id", "email", "plan", "monthly_fee"]},
        output_columns=["customer_id", "email", "plan", "monthly_fee"],
    )
    gen = ScriptedGenerator([first, repaired])
    clock = datetime(2025, 6, 1, tzinfo=timezone.utc)
    ledger = FileRunLedger(tmp_path / "ledger", retention_hours=1, clock=lambda: clock)

    report = synthesize_sync(
        "clean customers: one row per email, default plan basic, most expensive first",
        dataset,
        gen,
        settings=_settings(),
        ledger=ledger,
        run_id="customers-1",
    )

    assert report.ok
    assert report.iterations_used == 1
    assert report.specification.version == 2
    assert gen.requests[1].prior_errors[0].operation_index == 2
    assert report.output_sample.row_count == 3

    output = ledger.load_output("customers-1")
    assert output.column("email") == [
        "carla@example.com",
        "eva@example.com",
        "duarte@example.com",
        "bruno@example.com",
        "ana.costa@example.com",
    ]
    assert output.column("plan")[2] == "basic"
    # entre as duas linhas de ana.costa, a de signup mais antigo (id 4) foi mantida
    assert output.column("customer_id")[4] == "4"

    manifest = load_manifest(tmp_path / "ledger" / "customers-1" / "manifest.json")
    assert [manifest.attempt(i)["status"] for i in (0, 1)] == ["rejected", "accepted"]
    assert manifest.run["final_status"] == "success"
    assert ledger.get("customers-1")["expires_at"] == "2025-06-01T01:00:00+00:00"

    replayed = replay(ledger.load_specification("customers-1"), dataset)
    assert replayed.output.column("email") == output.column("email")
