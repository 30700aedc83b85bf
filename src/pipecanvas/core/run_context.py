# src/pipecanvas/core/run_context.py
"""
RunContext — Contexto canônico de uma run de síntese do PipeCanvas.

Este módulo define o **RunContext**, a estrutura compartilhada pelo
Orchestrator, Validator e Engine durante uma única run.

O RunContext é o **único meio permitido** de:
- registrar logs estruturados de execução (eventos por escopo)
- coletar warnings não fatais
- expor a configuração efetiva da run aos componentes

Princípios fundamentais:
- Isolamento por execução (cada run possui seu próprio contexto)
- Nenhum componente acessa estado global para comunicação indireta
- Eventos são apenas anexados (nunca reescritos)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


@dataclass
class RunContext:
    """
    Contexto de execução compartilhado de uma run.

    Campos canônicos:
    - run_id: identificador único da run
    - created_at: timestamp UTC de criação do contexto
    - config: configuração efetiva (defaults + override deep-merge)
    - warnings: warnings por escopo
    - events: log estruturado de eventos
    """

    run_id: str
    created_at: str
    config: Dict[str, Any] = field(default_factory=dict)

    warnings: Dict[str, List[str]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    # o Engine roda em thread separada (asyncio.to_thread)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def new(cls, run_id: str, config: Dict[str, Any] | None = None) -> "RunContext":
        return cls(run_id=run_id, created_at=datetime.now(timezone.utc).isoformat(), config=dict(config or {}))

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, scope: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "scope": scope,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        with self._lock:
            self.events.append(event)

    def add_warning(self, *, scope: str, message: str) -> None:
        with self._lock:
            self.warnings.setdefault(scope, []).append(message)

    def events_for(self, scope: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [e for e in self.events if e.get("scope") == scope]
