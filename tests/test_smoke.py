# tests/test_smoke.py
"""
Testes de sanidade estrutural (smoke tests) do PipeCanvas.

Objetivo único: garantir que o pacote é importável e que a descoberta de
testes funciona. Não valida comportamento de domínio.
"""


def test_smoke():
    import pipecanvas

    assert pipecanvas.__version__
