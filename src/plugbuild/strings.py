"""Exclusive multi-pattern string substitution.

:func:`sub` replaces several lookups in one pass over the text. Lookups are
combined into a single alternation so that the result of one substitution
is never matched by another. Substituting ``foo -> bar`` and ``bar -> lol``
in ``"foo bar baz"`` yields ``"bar lol baz"``, not ``"lol lol baz"``.

A lookup is either a plain string, matched between word boundaries
(``\\b``), or a compiled :class:`re.Pattern`, matched as-is (its flags are
ignored). A replacement is either a literal string or a callable that
receives the matched text and returns its replacement.
"""

from __future__ import annotations

import re
from typing import Callable, Sequence, Union

Lookup = Union[str, re.Pattern[str]]
Replacement = Union[str, Callable[[str], str]]
Substitution = tuple[Lookup, Replacement]

_GROUP_PREFIX = "_plugbuild_sub"


def compile_subs(subs: Sequence[Substitution]) -> re.Pattern[str]:
    """Build the combined alternation used by :func:`sub`.

    Each lookup becomes one named group so that lookups containing their
    own capture groups cannot shift the group numbering.
    """
    parts: list[str] = []
    for index, (lookup, _) in enumerate(subs):
        if isinstance(lookup, re.Pattern):
            body = lookup.pattern
        else:
            body = r"\b" + re.escape(lookup) + r"\b"
        parts.append(f"(?P<{_GROUP_PREFIX}{index}>{body})")
    return re.compile("|".join(parts), re.MULTILINE)


def sub(text: str, subs: Sequence[Substitution]) -> str:
    """Apply every substitution in *subs* to *text* in a single pass.

    Args:
        text: Input text, typically bundled program code.
        subs: ``(lookup, replacement)`` pairs. Earlier pairs win when two
            lookups match at the same position.

    Returns:
        The substituted text. *text* is returned unchanged when *subs* is
        empty.
    """
    if not subs:
        return text
    pattern = compile_subs(subs)

    def _replace(match: re.Match[str]) -> str:
        for index, (_, replacement) in enumerate(subs):
            matched = match.group(f"{_GROUP_PREFIX}{index}")
            if matched is not None:
                if callable(replacement):
                    return replacement(matched)
                return replacement
        return match.group(0)

    return pattern.sub(_replace, text)
