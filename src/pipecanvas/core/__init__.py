# src/pipecanvas/core/__init__.py
"""
Core do PipeCanvas.

Implementação canônica e independente de adapters: modelo tabular,
especificação, Engine, Validator e Orchestrator.

Princípios fundamentais:
    - Nenhuma decisão silenciosa: todo comportamento é explícito e testado
    - Determinismo: mesma especificação + mesmo dataset ⇒ mesma saída
    - O core não conhece modelos de linguagem concretos nem armazenamento
"""
