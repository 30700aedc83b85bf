# tests/core/validation/test_validator.py
"""
Testes do Validator (passagem estrutural → passagem semântica).

Os testes asseguram que:
- erros estruturais impedem a execução (o Engine nunca é chamado)
- falha de execução produz exatamente UM erro runtime atribuído
- checagens de aceitação produzem erros semânticos de pipeline
- lista vazia de erros significa especificação aceita
"""

from pipecanvas.core.config.settings import SynthesisSettings
from pipecanvas.core.errors import ErrorCategory
from pipecanvas.core.spec.model import PipelineSpecification
from pipecanvas.core.tabular.value import TabularValue
from pipecanvas.core.validation.validator import SemanticChecks, Validator, validator_from_settings


def _spec(*ops, output_columns=None):
    return PipelineSpecification.from_dict(
        {"id": "s", "version": 1, "operations": list(ops), "output_columns": output_columns}
    )


def test_accepts_valid_specification(emails_table):
    outcome = Validator().validate(
        _spec(
            {"kind": "normalize-field", "field": "email", "op": "lowercase"},
            {"kind": "deduplicate", "key": "email"},
        ),
        emails_table,
    )
    assert outcome.ok and outcome.executed
    assert outcome.output.rows == [{"email": "a@x.com"}]


def test_structural_errors_skip_execution(emails_table):
    outcome = Validator().validate(_spec({"kind": "explode"}, {"kind": "sort"}), emails_table)
    assert not outcome.ok
    assert not outcome.executed
    assert outcome.output is None
    assert [e.operation_index for e in outcome.errors] == [0, 1]
    assert {e.category for e in outcome.errors} == {ErrorCategory.STRUCTURAL}


def test_runtime_failure_is_exactly_one_error(people_table):
    spec = _spec(
        {"kind": "normalize-field", "field": "email", "op": "lowercase"},
        {"kind": "filter", "column": "phone", "op": "not_empty"},
    )
    outcome = Validator().validate(spec, people_table)
    assert len(outcome.errors) == 1
    err = outcome.errors[0]
    assert err.category == ErrorCategory.RUNTIME
    assert err.operation_index == 1
    assert "phone" in err.message


def test_missing_declared_output_column_is_semantic(people_table):
    spec = _spec({"kind": "select-columns", "columns": ["name"]}, output_columns=["name", "email"])
    outcome = Validator().validate(spec, people_table)
    assert len(outcome.errors) == 1
    err = outcome.errors[0]
    assert err.category == ErrorCategory.SEMANTIC
    assert err.operation_index is None
    assert "['email']" in err.message


def test_required_columns_from_configuration(people_table):
    v = Validator(checks=SemanticChecks(required_output_columns=("city",)))
    outcome = v.validate(_spec({"kind": "select-columns", "columns": ["name"]}), people_table)
    assert "['city']" in outcome.errors[0].message


def test_empty_output_for_non_empty_input(people_table):
    spec = _spec({"kind": "filter", "column": "city", "op": "eq", "value": "Faro"})
    outcome = Validator().validate(spec, people_table)
    assert [e.category for e in outcome.errors] == [ErrorCategory.SEMANTIC]
    assert "output is empty" in outcome.errors[0].message

    lenient = Validator(checks=SemanticChecks(forbid_empty_output=False))
    assert lenient.validate(spec, people_table).ok


def test_empty_input_may_produce_empty_output():
    table = TabularValue.empty(["city"])
    assert Validator().validate(_spec({"kind": "sort", "by": "city"}), table).ok


def test_row_limits(people_table):
    spec = _spec({"kind": "sort", "by": "name"})
    v = Validator(checks=SemanticChecks(max_output_rows=3))
    assert "more than the allowed 3" in v.validate(spec, people_table).errors[0].message

    grow = _spec({"kind": "aggregate", "group_by": ["city"], "aggregations": [{"func": "count"}]})
    shrink_ok = Validator(checks=SemanticChecks(max_row_growth_ratio=1.0))
    assert shrink_ok.validate(grow, people_table).ok


def test_semantic_errors_accumulate(people_table):
    v = Validator(checks=SemanticChecks(required_output_columns=("zzz",), max_output_rows=1))
    outcome = v.validate(_spec({"kind": "sort", "by": "name"}), people_table)
    assert len(outcome.errors) == 2


def test_validator_from_settings():
    s = SynthesisSettings.from_config(
        {"semantic": {"required_output_columns": ["email"], "max_output_rows": 10}, "errors": {"sample_rows": 2}}
    )
    v = validator_from_settings(s)
    assert v.checks.required_output_columns == ("email",)
    assert v.checks.max_output_rows == 10
    assert v.sample_rows == 2


def test_validator_logs_outcome(people_table, run_ctx):
    Validator().validate(_spec({"kind": "explode"}), people_table, ctx=run_ctx)
    Validator().validate(_spec({"kind": "sort", "by": "name"}), people_table, ctx=run_ctx)
    events = run_ctx.events_for("validator")
    assert [e["level"] for e in events] == ["warning", "info"]
    assert events[1]["errors"] == 0
