"""PipeCanvas — Tabular (core).

Representação imutável de datasets parseados e adapter CSV.
"""

from .value import ColumnType, TabularValue, classify_value, is_empty_value  # noqa: F401
from .csv_io import read_csv_base64, read_csv_path, read_csv_text, write_csv_text  # noqa: F401
