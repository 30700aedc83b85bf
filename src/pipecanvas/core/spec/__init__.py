"""PipeCanvas — Pipeline Specification (core).

Modelo imutável/versionado de especificação e schema do vocabulário fechado.
"""

from .model import Operation, PipelineSpecification, diff  # noqa: F401
from .schema import (  # noqa: F401
    OPERATION_SCHEMAS,
    OperationKind,
    describe_vocabulary,
    known_kinds,
    validate_structure,
)
