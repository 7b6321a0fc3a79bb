"""Conversion between configuration values and edit-form text fields."""
import json
import math
import re
from typing import Any, Dict, Mapping


def coerce_value(text: str) -> Any:
    """Turn the text of an edit-form field back into a JSON value.

    Precedence: a value starting with [ or { is parsed as JSON (kept as text
    if that fails), then the literals true/false, then numbers, then plain
    text. A string that merely looks like a boolean or number is converted
    too; there is no way to enter the string "true".
    """
    if text.startswith("[") or text.startswith("{"):
        try:
            return json.loads(text)
        except ValueError:
            return text

    if text in ("true", "false"):
        return text == "true"

    if text.strip():
        number = _parse_number(text.strip())
        if number is not None:
            return number

    return text


def _parse_number(text: str):
    if "_" in text:
        return None
    try:
        if re.fullmatch(r"[+-]?\d+", text):
            return int(text)
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    if value.is_integer() and "e" not in text.lower():
        return int(value)
    return value


def format_input_value(value: Any) -> str:
    """Render a configuration value as editable text."""
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def form_fields(spec: Mapping[str, Any]) -> Dict[str, str]:
    """Return the editable fields of a spec; null values are not shown."""
    return {key: format_input_value(value) for key, value in spec.items() if value is not None}


def collect_form_data(fields: Mapping[str, str]) -> Dict[str, Any]:
    """Build a spec from submitted form fields, coercing every value."""
    return {key: coerce_value(value) for key, value in fields.items()}


def format_property_label(key: str) -> str:
    """Convert a camelCase key to a Title Case label."""
    spaced = re.sub(r"([A-Z])", r" \1", key)
    return (spaced[:1].upper() + spaced[1:]).strip()
