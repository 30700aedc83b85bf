"""PipeCanvas — Synthesis (core).

Estado da run, contrato do gerador e o Orchestrator do loop de reparo.
"""

from .cancellation import CancellationToken  # noqa: F401
from .generator import GenerationRequest, PipelineGenerator  # noqa: F401
from .orchestrator import SynthesisOrchestrator, SynthesisReport, SynthesisRequest  # noqa: F401
from .run import FailureCategory, FinalStatus, Phase, RunRecord, SpecVersion, SynthesisRun  # noqa: F401
