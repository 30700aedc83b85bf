# tests/conftest.py
"""
Fixtures compartilhados para testes do PipeCanvas.

Este módulo define fixtures reutilizáveis que fornecem:
- datasets tabulares pequenos e determinísticos
- settings de síntese com timeouts curtos
- contexto de execução controlado (RunContext)

O objetivo destas fixtures é permitir testes do core (tabular, spec,
engine, validator e orchestrator) sem depender de:
- filesystem
- variáveis de ambiente
- modelos de linguagem reais

Decisões arquiteturais:
    - Fixtures são mantidas simples e explícitas
    - Dados retornados são determinísticos e isolados
    - Geradores de teste vivem em `tests/fixtures/` (duck typing)

Invariantes:
    - Nenhuma fixture realiza I/O de rede
    - Nenhuma fixture contém lógica de domínio
"""

import pytest


@pytest.fixture
def emails_table():
    """Dataset do cenário canônico: mesmo e-mail com caixa diferente."""
    from pipecanvas.core.tabular.value import TabularValue

    return TabularValue.from_rows(["email"], [{"email": "A@x.com"}, {"email": "a@x.com"}])


@pytest.fixture
def people_table():
    """
    Dataset de pessoas com valores crus (strings, como vindos de CSV).

    Contém duplicidade de e-mail (com caixa/espaços diferentes), idade
    vazia e datas ISO, para exercitar filtros, coerções e ordenação.
    """
    from pipecanvas.core.tabular.value import TabularValue

    headers = ["name", "email", "age", "city", "signup"]
    rows = [
        {"name": "ana", "email": "Ana@X.com ", "age": "31", "city": "Lisboa", "signup": "2024-03-01"},
        {"name": "bruno", "email": "bruno@y.com", "age": "", "city": "Porto", "signup": "2024-01-15"},
        {"name": "carla", "email": "carla@z.com", "age": "27", "city": "Lisboa", "signup": "2023-12-31"},
        {"name": "ana b", "email": "ana@x.com", "age": "45", "city": "Braga", "signup": "2024-02-10"},
        {"name": "duarte", "email": "duarte@y.com", "age": "19", "city": "Porto", "signup": "2024-04-20"},
    ]
    return TabularValue.from_rows(headers, rows)


@pytest.fixture
def sales_table():
    from pipecanvas.core.tabular.value import TabularValue

    headers = ["region", "product", "qty", "price"]
    rows = [
        {"region": "north", "product": "a", "qty": "2", "price": "10.5"},
        {"region": "south", "product": "b", "qty": "1", "price": "4"},
        {"region": "north", "product": "b", "qty": "3", "price": "4"},
        {"region": "east", "product": "a", "qty": "5", "price": "10.5"},
        {"region": "south", "product": "a", "qty": "", "price": "10.5"},
    ]
    return TabularValue.from_rows(headers, rows)


@pytest.fixture
def fast_settings():
    """Settings com timeouts curtos (testes de timeout/cancelamento)."""
    from pipecanvas.core.config.settings import SynthesisSettings

    return SynthesisSettings.from_config(
        {
            "synthesis": {
                "max_iterations": 3,
                "generator_timeout_s": 0.5,
                "execution_timeout_s": 5,
                "dataset_sample_rows": 3,
                "output_sample_rows": 10,
            },
            "errors": {"sample_rows": 5, "sample_max_chars": 2000},
            "semantic": {"required_output_columns": [], "forbid_empty_output": True},
            "ledger": {"retention_hours": 24},
        }
    )


@pytest.fixture
def run_ctx():
    from pipecanvas.core.run_context import RunContext

    return RunContext(run_id="run-test", created_at="2025-01-01T00:00:00+00:00", config={})
