# tests/generators/test_llm_generator.py
"""
Tests for the LangChain-backed pipeline generator.

A fake chat model with ``with_structured_output`` support returns scripted
``PipelineDraft`` instances, so no provider is contacted.
"""

from __future__ import annotations

import asyncio

import pytest

from pipecanvas.core.errors import runtime_error
from pipecanvas.core.exceptions import GeneratorUnavailableError
from pipecanvas.core.config.settings import SynthesisSettings
from pipecanvas.core.spec.model import Operation
from pipecanvas.core.synthesis import GenerationRequest, PipelineGenerator, SynthesisOrchestrator, SynthesisRequest
from pipecanvas.generators import LangChainPipelineGenerator, OperationDraft, PipelineDraft
from tests.fixtures.chat_models import FakeStructuredChatModel
from tests.fixtures.generators import make_spec


def _draft(*ops: tuple[str, dict], output_columns: list[str] | None = None) -> PipelineDraft:
    return PipelineDraft(
        reasoning="scripted",
        operations=[OperationDraft(kind=k, params=p) for k, p in ops],
        output_columns=output_columns,
    )


DEDUPE = _draft(
    ("normalize-field", {"field": "email", "op": "lowercase"}),
    ("deduplicate", {"key": "email"}),
    output_columns=["email"],
)


def _generate(generator: LangChainPipelineGenerator, request: GenerationRequest):
    return asyncio.run(generator.generate(request))


class TestLangChainPipelineGenerator:
    def test_satisfies_generator_protocol(self) -> None:
        gen = LangChainPipelineGenerator(FakeStructuredChatModel(structured_responses=[DEDUPE]))
        assert isinstance(gen, PipelineGenerator)

    def test_draft_becomes_specification(self, emails_table) -> None:
        gen = LangChainPipelineGenerator(FakeStructuredChatModel(structured_responses=[DEDUPE]))
        spec = _generate(gen, GenerationRequest(prompt="dedupe", dataset_sample=emails_table))
        assert spec.operations == (
            Operation("normalize-field", {"field": "email", "op": "lowercase"}),
            Operation("deduplicate", {"key": "email"}),
        )
        assert spec.output_columns == ("email",)
        assert spec.created_from_prompt == "dedupe"

    def test_dict_response_is_accepted(self, emails_table) -> None:
        raw = {"operations": [{"kind": "sort", "params": {"by": "email"}}]}
        gen = LangChainPipelineGenerator(FakeStructuredChatModel(structured_responses=[raw]))
        spec = _generate(gen, GenerationRequest(prompt="sort", dataset_sample=emails_table))
        assert spec.operations[0].kind == "sort"
        assert spec.output_columns is None

    def test_unknown_kind_is_passed_through_for_validation(self, emails_table) -> None:
        gen = LangChainPipelineGenerator(
            FakeStructuredChatModel(structured_responses=[_draft(("explode", {"column": "email"}))])
        )
        spec = _generate(gen, GenerationRequest(prompt="x", dataset_sample=emails_table))
        assert spec.operations[0].kind == "explode"

    @pytest.mark.parametrize(
        "response",
        [TimeoutError("provider timeout"), {"reasoning": "no operations"}, "plain text answer"],
    )
    def test_failures_become_generator_unavailable(self, emails_table, response) -> None:
        gen = LangChainPipelineGenerator(FakeStructuredChatModel(structured_responses=[response]))
        with pytest.raises(GeneratorUnavailableError):
            _generate(gen, GenerationRequest(prompt="x", dataset_sample=emails_table))

    def test_initial_inputs_have_no_repair_section(self, people_table) -> None:
        gen = LangChainPipelineGenerator(FakeStructuredChatModel(structured_responses=[DEDUPE]))
        inputs = gen.build_inputs(GenerationRequest(prompt="clean", dataset_sample=people_table.head(2)))
        assert inputs["repair_section"] == ""
        assert inputs["headers"] == "name, email, age, city, signup"
        assert '"age": "number"' in inputs["column_types"]
        assert len(inputs["rows"].splitlines()) == 2
        assert "- deduplicate:" in inputs["vocabulary"]

    def test_repair_prompt_carries_previous_spec_and_errors(self, emails_table) -> None:
        model = FakeStructuredChatModel(structured_responses=[DEDUPE])
        gen = LangChainPipelineGenerator(model)
        previous = make_spec({"kind": "filter", "column": "phone", "op": "not_empty"})
        request = GenerationRequest(
            prompt="dedupe",
            dataset_sample=emails_table,
            prior_errors=(runtime_error("operation 0 (filter) failed: column(s) not found: ['phone']", operation_index=0),),
            previous_specification=previous,
            iteration=1,
        )
        _generate(gen, request)
        rendered = model.seen_inputs[-1].to_string()
        assert "## Repair (attempt 1)" in rendered
        assert "[runtime] operation 0" in rendered
        assert '"column": "phone"' in rendered
        assert "## Goal\ndedupe" in rendered


def test_orchestrator_with_langchain_generator(emails_table) -> None:
    model = FakeStructuredChatModel(
        structured_responses=[_draft(("filter", {"column": "phone", "op": "not_empty"})), DEDUPE]
    )
    orch = SynthesisOrchestrator(LangChainPipelineGenerator(model), settings=SynthesisSettings())
    report = asyncio.run(orch.synthesize(SynthesisRequest(prompt="dedupe", dataset=emails_table)))
    assert report.ok
    assert report.iterations_used == 1
    assert report.output_sample.rows == [{"email": "a@x.com"}]
