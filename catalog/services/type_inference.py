"""
Column type inference from sampled string values.

Rules are applied in order and the first match wins: empty samples are
``string``, then ``number``, ``date``, ``boolean`` and finally ``string``.
Only the sampled distinct values of a column are inspected, so mixed columns
whose sample happens to be homogeneous are misclassified.
"""

import re
from typing import Iterable, Sequence

from catalog.models.dataset import DataType


# Numeric literals as understood by JavaScript's Number(): decimal with
# optional exponent, 0x/0o/0b integers and signed Infinity. Digits are
# ASCII only.
_NUMERIC_RE = re.compile(
    r"""
    ^[+-]?(?:
        (?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?
        |Infinity
    )\Z
    |^0[xX][0-9a-fA-F]+\Z
    |^0[oO][0-7]+\Z
    |^0[bB][01]+\Z
    """,
    re.VERBOSE | re.ASCII,
)

_DATE_RE = re.compile(
    r"^\d{1,4}[-/]\d{1,2}[-/]\d{1,4}\Z|^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}",
    re.ASCII,
)

BOOLEAN_VALUES = frozenset({"true", "false", "yes", "no", "0", "1", "y", "n"})


def is_numeric(value: str) -> bool:
    stripped = value.strip()
    return bool(stripped) and _NUMERIC_RE.match(stripped) is not None


def is_date(value: str) -> bool:
    return _DATE_RE.search(value) is not None


def is_boolean(value: str) -> bool:
    return value.lower() in BOOLEAN_VALUES


def infer_data_type(values: Sequence[str]) -> DataType:
    """
    Classify a column from its sampled values.

    Args:
        values: Distinct non-empty sample values of the column

    Returns:
        The inferred DataType
    """
    if not values:
        return DataType.STRING
    if _all(is_numeric, values):
        return DataType.NUMBER
    if _all(is_date, values):
        return DataType.DATE
    if _all(is_boolean, values):
        return DataType.BOOLEAN
    return DataType.STRING


def _all(predicate, values: Iterable[str]) -> bool:
    return all(predicate(str(v)) for v in values)
