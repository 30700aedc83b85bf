"""Validators para testes de timeout e cancelamento da execução.

`BlockingValidator` segura a passagem semântica (que roda em thread) até o
sinal de parada do Orchestrator ser acionado ou `limit_s` expirar.
"""

import threading

from pipecanvas.core.validation.validator import Validator


class BlockingValidator(Validator):
    def __init__(self, limit_s: float = 5.0, **kwargs):
        super().__init__(**kwargs)
        self.limit_s = limit_s
        self.started = threading.Event()
        self.stopped = threading.Event()

    def semantic_pass(self, spec, table, *, ctx=None, stop=None):
        self.started.set()
        if stop is not None and stop.wait(self.limit_s):
            self.stopped.set()
        return super().semantic_pass(spec, table, ctx=ctx, stop=stop)
