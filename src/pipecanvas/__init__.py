# src/pipecanvas/__init__.py
"""
PipeCanvas — síntese de pipelines de dados determinísticos a partir de
linguagem natural.

Um objetivo em linguagem natural + um dataset de amostra viram uma
*especificação* de pipeline reexecutável, que é gerada por um backend
externo, validada, executada e reparada automaticamente dentro de um
número limitado de tentativas.

Arquitetura em alto nível:
    - core.tabular      → valor tabular imutável + adapter CSV
    - core.spec         → especificação versionada e vocabulário fechado
    - core.engine       → execução determinística das operações
    - core.validation   → passagens estrutural e semântica
    - core.synthesis    → máquina de estados gerar → validar → reparar
    - core.config       → carregamento, merge, hashing e settings
    - core.traceability → Manifest e Event Log da run
    - generators        → adapters de geração (LangChain)
    - ledger            → persistência append-only das runs
    - report            → relatório Markdown da run
    - api               → fachada pública (synthesize / replay / export)

Limites explícitos:
    - Não expõe rotas web, UI ou autenticação
    - Não executa código gerado livremente: apenas o vocabulário fechado
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
