"""
multidb DB — Named parameter translation.

Callers write one placeholder convention on every backend: ``@name``
(SQL Server style) or ``:name`` (MySQL / PostgreSQL style).  This module
rewrites such a template into the driver's native parameter style:

    qmark     ``?``            (aioodbc / SQL Server)
    format    ``%s``           (aiomysql)
    numeric   ``$1, $2, ...``  (asyncpg)
    pyformat  ``%(name)s``     (values returned as a mapping)

Markers are matched as whole identifiers, so ``:id`` never consumes part
of ``:identifier``.  String literals, quoted and bracketed identifiers,
comments, ``::`` casts and ``@@`` system variables are copied through
untouched, as are markers whose name is not in the mapping.  Backslash
escapes inside string literals are honoured only for the MySQL styles
(``format`` and ``pyformat``); SQL Server and PostgreSQL treat ``\\`` as an
ordinary character.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, NamedTuple, Tuple, Union

__all__ = [
    "PARAM_STYLES",
    "TranslatedQuery",
    "translate",
    "find_placeholders",
    "count_placeholders",
]

PARAM_STYLES = ("qmark", "format", "numeric", "pyformat")

# Alternatives are tried left to right at each position; everything except
# the last group is copied verbatim.
_TOKEN_PATTERN = r"""
      (?P<string>{string})
    | (?P<quoted>"(?:[^"]|"")*")           # "identifier"
    | (?P<backtick>`[^`]*`)                # `identifier` (MySQL)
    | (?P<bracket>\[[^\]:@]*\])           # [identifier] (SQL Server), not ARRAY[:a]
    | (?P<line_comment>--[^\n]*)
    | (?P<block_comment>/\*.*?\*/)
    | (?P<skip>::|@@\w*)                   # casts and system variables
    | [@:](?P<name>[A-Za-z_]\w*)
"""

# 'literal', 'it''s'
_TOKEN_RE = re.compile(
    _TOKEN_PATTERN.format(string=r"'(?:[^']|'')*'"), re.VERBOSE | re.DOTALL
)
# MySQL also reads backslash escapes: 'it\'s'
_BACKSLASH_TOKEN_RE = re.compile(
    _TOKEN_PATTERN.format(string=r"'(?:[^'\\]|\\.|'')*'"), re.VERBOSE | re.DOTALL
)


def _tokens_for(style: str) -> re.Pattern:
    return _BACKSLASH_TOKEN_RE if style in ("format", "pyformat") else _TOKEN_RE


class TranslatedQuery(NamedTuple):
    """SQL in native style plus the values to bind."""

    sql: str
    values: Union[Tuple[Any, ...], Dict[str, Any]]


def _normalize(params: Mapping[str, Any] | None) -> Dict[str, Any]:
    """Accept keys written with or without their marker prefix."""
    if not params:
        return {}
    return {str(key).lstrip("@:"): value for key, value in params.items()}


def translate(
    sql: str,
    params: Mapping[str, Any] | None,
    style: str = "qmark",
) -> TranslatedQuery:
    """
    Rewrite named markers in ``sql`` into ``style`` placeholders.

    Every occurrence of a known marker yields one placeholder and, for the
    positional styles, one value appended in template order.  Mapping
    entries that are never referenced are ignored.

    For ``format`` and ``pyformat`` every literal ``%`` is doubled, because
    the driver interpolates the whole statement.

    Raises:
        ValueError: unknown ``style``
    """
    if style not in PARAM_STYLES:
        raise ValueError(f"Unknown parameter style {style!r}; expected one of {PARAM_STYLES}")

    mapping = _normalize(params)
    escape = style in ("format", "pyformat")
    positional: List[Any] = []
    named: Dict[str, Any] = {}
    pieces: List[str] = []

    def plain(text: str) -> str:
        return text.replace("%", "%%") if escape else text

    pos = 0
    for match in _tokens_for(style).finditer(sql):
        pieces.append(plain(sql[pos:match.start()]))
        pos = match.end()

        name = match.group("name")
        if name is None or name not in mapping:
            pieces.append(plain(match.group(0)))
            continue

        value = mapping[name]
        if style == "pyformat":
            named[name] = value
            pieces.append(f"%({name})s")
            continue

        positional.append(value)
        if style == "qmark":
            pieces.append("?")
        elif style == "format":
            pieces.append("%s")
        else:
            pieces.append(f"${len(positional)}")

    pieces.append(plain(sql[pos:]))
    values = named if style == "pyformat" else tuple(positional)
    return TranslatedQuery("".join(pieces), values)


def find_placeholders(sql: str, style: str = "qmark") -> List[str]:
    """Distinct marker names in template order, ignoring skipped regions."""
    seen: List[str] = []
    for match in _tokens_for(style).finditer(sql):
        name = match.group("name")
        if name is not None and name not in seen:
            seen.append(name)
    return seen


def count_placeholders(sql: str, style: str = "qmark") -> int:
    """Number of distinct named markers in ``sql``."""
    return len(find_placeholders(sql, style))
