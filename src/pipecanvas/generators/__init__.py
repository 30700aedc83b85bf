"""PipeCanvas — adapters de geração de especificações."""

from .llm import LangChainPipelineGenerator, OperationDraft, PipelineDraft  # noqa: F401
