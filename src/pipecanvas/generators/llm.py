# src/pipecanvas/generators/llm.py
"""
Gerador de especificações baseado em LLM (LangChain, saída estruturada).

O chat model recebe:
    - o objetivo em linguagem natural
    - um trecho do dataset com os tipos de coluna inferidos
    - o vocabulário fechado de operações
    - no reparo: a especificação rejeitada e os erros da tentativa
      imediatamente anterior

A resposta é um `PipelineDraft`, convertido em `PipelineSpecification`
(id e versão são carimbados depois pelo Orchestrator).

Limites explícitos:
    - Qualquer falha da chamada ao modelo, ou resposta inutilizável, vira
      `GeneratorUnavailableError`
    - NÃO tenta reparar nem repetir: isso é papel do Orchestrator

Os textos enviados ao modelo (prompt e descrições de campos) ficam em inglês.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from pipecanvas.core.exceptions import GeneratorUnavailableError
from pipecanvas.core.spec.model import PipelineSpecification
from pipecanvas.core.spec.schema import describe_vocabulary
from pipecanvas.core.synthesis.generator import GenerationRequest

logger = logging.getLogger(__name__)


# -- Schemas de saída estruturada ---------------------------------------------


class OperationDraft(BaseModel):
    """Uma operação como proposta pelo modelo."""

    kind: str = Field(description="Operation kind from the closed vocabulary")
    params: dict[str, Any] = Field(
        default_factory=dict,
        description="Parameters of the operation, as documented in the vocabulary",
    )


class PipelineDraft(BaseModel):
    """Schema de saída estruturada de uma especificação de pipeline."""

    reasoning: str = Field(default="", description="Short explanation of the pipeline")
    operations: list[OperationDraft] = Field(description="Operations in execution order")
    output_columns: list[str] | None = Field(
        default=None,
        description="Columns the final output is expected to have (optional)",
    )


# -- Prompt ------------------------------------------------------------------

_SYSTEM = (
    "You design deterministic data-transformation pipelines. "
    "A pipeline is an ordered list of operations; each operation is applied "
    "to the output of the previous one. Use ONLY the operation kinds and "
    "parameters listed below; never invent kinds or parameters.\n\n"
    "## Operation vocabulary\n{vocabulary}\n\n"
    "Operands of derive-column are either a column name (string) or a "
    "literal object {{\"value\": ...}}."
)

_PIPELINE_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", _SYSTEM),
        (
            "human",
            "## Goal\n{prompt}\n\n"
            "## Dataset sample\n"
            "**Columns**: {headers}\n"
            "**Column types**: {column_types}\n"
            "**Rows**:\n{rows}\n\n"
            "{repair_section}"
            "Return the pipeline.",
        ),
    ]
)


def _repair_section(request: GenerationRequest) -> str:
    if not request.prior_errors and request.previous_specification is None:
        return ""
    previous = (
        json.dumps(request.previous_specification.to_dict()["operations"], ensure_ascii=False, sort_keys=True)
        if request.previous_specification is not None
        else "[]"
    )
    errors = "\n".join(
        f"- [{e.category.value}] operation {e.operation_index if e.operation_index is not None else '-'}: {e.message}"
        for e in request.prior_errors
    )
    return (
        f"## Repair (attempt {request.iteration})\n"
        f"The previous pipeline was rejected.\n"
        f"**Previous operations**: {previous}\n"
        f"**Errors**:\n{errors or '- none reported'}\n"
        "Fix these errors and keep what already works.\n\n"
    )


# -- Gerador -----------------------------------------------------------------


class LangChainPipelineGenerator:
    """Gerador de pipelines sobre qualquer chat model do LangChain.

    Parâmetros:
        - model: chat model com suporte a `with_structured_output`
        - prompt: `ChatPromptTemplate` alternativo (mesmas variáveis de entrada)
    """

    def __init__(self, model: BaseChatModel, prompt: ChatPromptTemplate | None = None) -> None:
        self.model = model
        self._prompt = prompt or _PIPELINE_PROMPT
        self._chain = self._build_chain()

    def _build_chain(self) -> Any:
        structured_model = self.model.with_structured_output(PipelineDraft)
        return self._prompt | structured_model

    def build_inputs(self, request: GenerationRequest) -> dict[str, Any]:
        sample = request.dataset_sample
        return {
            "vocabulary": describe_vocabulary(),
            "prompt": request.prompt,
            "headers": ", ".join(sample.headers),
            "column_types": json.dumps(
                {k: v.value for k, v in sample.column_types().items()}, ensure_ascii=False
            ),
            "rows": "\n".join(json.dumps(r, ensure_ascii=False, default=str) for r in sample.rows) or "(no rows)",
            "repair_section": _repair_section(request),
        }

    @staticmethod
    def _to_draft(result: Any) -> PipelineDraft:
        if isinstance(result, PipelineDraft):
            return result
        if isinstance(result, BaseModel):
            result = result.model_dump()
        if isinstance(result, dict):
            return PipelineDraft.model_validate(result)
        raise GeneratorUnavailableError(
            message=f"model returned {type(result).__name__}, expected a pipeline draft",
            details={"type": type(result).__name__},
        )

    async def generate(self, request: GenerationRequest) -> PipelineSpecification:
        inputs = self.build_inputs(request)
        logger.debug("Requesting pipeline (iteration=%d, prior_errors=%d)", request.iteration, len(request.prior_errors))
        try:
            result = await self._chain.ainvoke(inputs)
            draft = self._to_draft(result)
        except GeneratorUnavailableError:
            raise
        except PydanticValidationError as e:
            logger.warning("Malformed pipeline draft: %s", e)
            raise GeneratorUnavailableError(
                message="model returned a malformed pipeline draft",
                details={"error": str(e)},
            ) from e
        except Exception as e:
            logger.warning("Pipeline generation failed: %s", e)
            raise GeneratorUnavailableError(
                message=f"pipeline generation failed: {e}",
                details={"exception_class": e.__class__.__name__},
                hint="Check the chat model configuration and credentials",
            ) from e

        logger.info("Received pipeline draft with %d operation(s)", len(draft.operations))
        return PipelineSpecification.from_dict(
            {
                "id": "draft",
                "version": 1,
                "created_from_prompt": request.prompt,
                "output_columns": draft.output_columns,
                "operations": [{"kind": op.kind, "params": op.params} for op in draft.operations],
            }
        )
