"""Shared helper utilities.

Variable-axis bookkeeping and table formatting for the output module.
"""
from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:  # pragma: no cover - import only for type checking
    from collections.abc import Iterable, Sequence

__all__ = [
    "collect_variable_index",
    "escape_latex",
    "filter_variables",
    "format_number",
    "hline_placeholder",
    "pretty_term",
]


def collect_variable_index(variable_lists: Iterable[Sequence[Any]]) -> list[Any]:
    """Return an ordered union of variable names appearing across partitions.

    Names are ordered by first appearance.
    """
    seen: set[Any] = set()
    ordered: list[Any] = []
    for names in variable_lists:
        for name in names:
            if name not in seen:
                seen.add(name)
                ordered.append(name)
    return ordered


def _pattern_matches(label: Any, pattern: str) -> bool:
    text = str(label)
    try:
        return bool(re.search(pattern, text))
    except re.error:
        return text == pattern


def filter_variables(
    pool: Sequence[Any],
    *,
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
) -> list[Any]:
    """Keep names matching any ``include`` pattern and no ``exclude`` pattern.

    Patterns are regular expressions; one that does not compile is compared
    literally. Order of ``pool`` is preserved.
    """
    out = list(pool)
    if include:
        out = [n for n in out if any(_pattern_matches(n, p) for p in include)]
        if not out:
            raise ValueError("include patterns filtered out all variables.")
    if exclude:
        out = [n for n in out if not any(_pattern_matches(n, p) for p in exclude)]
    return out


def escape_latex(obj: Any) -> str:
    """Minimal LaTeX escaping (consistent with tabulate's expectations)."""
    text = str(obj)
    replacements = {
        "\\": r"\textbackslash{}",
        "&": r"\&",
        "%": r"\%",
        "$": r"\$",
        "#": r"\#",
        "_": r"\_",
        "{": r"\{",
        "}": r"\}",
        "~": r"\textasciitilde{}",
        "^": r"\textasciicircum{}",
    }
    out = []
    for ch in text:
        out.append(replacements.get(ch, ch))
    return "".join(out)


def pretty_term(name: Any, *, style: str = "paper") -> str:
    """Readable label for a variable name.

    ``style='paper'`` turns underscores into spaces and renders indicator
    names ``field[T.level]`` as ``field: level``. Escaping is left to
    :func:`escape_latex`.
    """
    text = str(name)
    if style != "paper":
        return text
    m = re.match(r"^(.*)\[T\.(.*)\]$", text)
    if m:
        text = f"{m.group(1)}: {m.group(2)}"
    return text.replace("_", " ")


def format_number(val: Any, fmt: str = ".3f") -> str:
    """Format a number for a table cell; missing or non-finite values are blank."""
    if val is None:
        return ""
    if isinstance(val, (bool, np.bool_)):
        return "yes" if val else "no"
    if isinstance(val, (int, float, np.integer, np.floating)):
        if not np.isfinite(float(val)):
            return ""
        return f"{float(val):{fmt}}"
    return str(val)


def hline_placeholder(n_columns: int) -> list[str]:
    """Placeholder row replaced by ``\\midrule`` after LaTeX rendering.

    The replacement happens in :func:`areareg.output.summary.modelsummary`.
    """
    return ["MSMIDRULE"] * (int(n_columns) + 1)  # include stub column
