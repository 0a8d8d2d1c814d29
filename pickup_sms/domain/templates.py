"""Message template rendering with {placeholder} fields."""

import re
from typing import Mapping, Optional

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render_template(template: str, fields: Mapping[str, Optional[object]]) -> str:
    """
    Fill {name} placeholders from fields.

    Missing or None values render as "". Braces that do not wrap a plain
    name are left as written.
    """
    def _substitute(match: "re.Match[str]") -> str:
        value = fields.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_substitute, template)


def greeting(first_name: Optional[str], fallback: str = "Hi") -> str:
    """"Hi Anna", or the fallback when no usable first name is known."""
    name = (first_name or "").strip()
    return f"Hi {name}" if name else fallback
