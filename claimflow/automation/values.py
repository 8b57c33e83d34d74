"""
Field values: закрытый набор типов значений колонок.

Значения в column_values не типизированы на уровне хранения. Движок
видит их как одно из: text, number, boolean, null, sequence.
Сравнение и приведение повторяют семантику веб-клиента, который
пишет эти значения (строгое равенство, строковое представление).
"""

import math
import re
from typing import Union

FieldValue = Union[str, int, float, bool, None, list]

# Самый длинный числовой префикс строки, как у parseFloat в веб-клиенте
_NUMERIC_PREFIX = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def strict_equals(left: object, right: object) -> bool:
    """Строгое равенство: без приведения типов (True != 1, 5 != "5").

    Последовательности и словари равны только сами себе (по ссылке).
    """
    if isinstance(left, (list, tuple, dict)) or isinstance(right, (list, tuple, dict)):
        return left is right
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def stringify(value: object) -> str:
    """Строковое представление значения, как его видит веб-клиент.

    None → "null", True → "true", 5.0 → "5", ["a", 1] → "a,1".
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (list, tuple)):
        # null внутри последовательности даёт пустую строку
        return ",".join("" if item is None else stringify(item) for item in value)
    return str(value)


def to_number(value: object) -> float | None:
    """Приводит значение к числу. None если приведение не удалось (NaN).

    Строка разбирается по самому длинному числовому префиксу:
    "12 sqft" → 12, "1_000" → 1, "inf" → None, [5, 6] ("5,6") → 5.
    """
    if isinstance(value, bool) or value is None:
        return None
    if _is_number(value):
        number = float(value)
    else:
        match = _NUMERIC_PREFIX.match(stringify(value).lstrip())
        if match is None:
            return None
        number = float(match.group())
    if math.isnan(number):
        return None
    return number


def is_empty(value: object) -> bool:
    """Пусто: null, пустая строка или пустая последовательность.

    0, False и строка из пробелов пустыми не считаются.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def is_not_empty(value: object) -> bool:
    """Не пусто: определено отдельно, но строго дополняет is_empty."""
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return True


def is_truthy(value: object) -> bool:
    """Истинность значения как в веб-клиенте.

    Ложны: None, False, 0, NaN и пустая строка. Пустая последовательность истинна.
    """
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value != ""
    if _is_number(value):
        return value != 0 and not math.isnan(value)
    return True


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
