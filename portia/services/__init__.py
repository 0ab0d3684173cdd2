from typing import Optional

from portia.errors import ValidationError


def text_input(field: str, value) -> Optional[str]:
    """Stripped string for a free-text input; None stays None, other types are rejected."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip()
