"""Template variable resolver.

Substitutes ``{{name}}`` placeholders with values from a workspace's
variable table at send time.

Matching rules:

1. Each placeholder is the *shortest* span from ``{{`` to the next ``}}``,
   so ``{{a}}{{b}}`` is two placeholders, never one.
2. The name between the delimiters is trimmed before lookup, so
   ``{{ host }}`` and ``{{host}}`` resolve identically.
3. Unknown names are left verbatim -- the text still shows ``{{missing}}``
   after substitution so the user can spot it.
4. Values are coerced with ``str()``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, TypeVar

T = TypeVar("T")

PLACEHOLDER_PATTERN = re.compile(r"\{\{(.+?)\}\}", re.DOTALL)


def substitute(text: T, variables: Mapping[str, Any]) -> T | str:
    """Replace every resolvable placeholder in *text*.

    Non-string input is returned unchanged.
    """
    if not isinstance(text, str):
        return text

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1).strip()
        if name in variables:
            return str(variables[name])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, text)


def find_placeholders(text: str) -> list[str]:
    """Return the trimmed placeholder names in *text*, in order of appearance."""
    if not isinstance(text, str):
        return []
    return [m.group(1).strip() for m in PLACEHOLDER_PATTERN.finditer(text)]


def unresolved_placeholders(text: str, variables: Mapping[str, Any]) -> list[str]:
    """Return the distinct placeholder names that *variables* cannot resolve."""
    missing: list[str] = []
    for name in find_placeholders(text):
        if name not in variables and name not in missing:
            missing.append(name)
    return missing
