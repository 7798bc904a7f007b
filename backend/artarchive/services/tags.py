from __future__ import annotations
import math
import re
from dataclasses import dataclass, field
from artarchive.errors import FieldError

# Keys outside the vocabulary must use this prefix, e.g. "custom:plaque_text"
CUSTOM_TAG_PREFIX = "custom:"
_CUSTOM_SLUG = re.compile(r"^[a-z0-9_\-]{1,64}$")
_DEFAULT_MAX_LENGTH = 500


@dataclass(frozen=True)
class TagDefinition:
    key: str
    data_type: str = "text"  # text|number|enum|yes_no|date|url
    max_length: int = _DEFAULT_MAX_LENGTH
    enum_values: tuple[str, ...] = field(default_factory=tuple)
    pattern: str | None = None
    min_value: float | None = None
    max_value: float | None = None


TAG_DEFINITIONS: dict[str, TagDefinition] = {
    d.key: d
    for d in (
        TagDefinition("artwork_type", max_length=100),
        TagDefinition("subject", max_length=200),
        TagDefinition("style", max_length=100),
        TagDefinition("start_date", data_type="date", pattern=r"^\d{4}(-\d{2}(-\d{2})?)?$"),
        TagDefinition("year", data_type="number", min_value=1, max_value=9999),
        TagDefinition("material", max_length=200),
        TagDefinition("height", data_type="number", min_value=0.1, max_value=200),
        TagDefinition("width", data_type="number", min_value=0.1, max_value=500),
        TagDefinition("condition", data_type="enum", enum_values=("excellent", "good", "fair", "poor", "damaged")),
        TagDefinition("access", data_type="enum", enum_values=("yes", "private", "customers", "no", "permissive")),
        TagDefinition("fee", data_type="yes_no", enum_values=("yes", "no")),
        TagDefinition("website", data_type="url"),
        TagDefinition("wikipedia", max_length=200, pattern=r"^[a-z]{2,3}:.+"),
        TagDefinition("keywords", max_length=500),
        # provenance of bulk-imported records
        TagDefinition("source", max_length=200),
        TagDefinition("source_url", data_type="url"),
        TagDefinition("source_id", max_length=200),
    )
}

NUMERIC_TAGS = frozenset(k for k, d in TAG_DEFINITIONS.items() if d.data_type == "number")


def is_known_key(key: str) -> bool:
    if key in TAG_DEFINITIONS:
        return True
    if key.startswith(CUSTOM_TAG_PREFIX):
        return bool(_CUSTOM_SLUG.match(key[len(CUSTOM_TAG_PREFIX):]))
    return False


def custom_key(raw: str) -> str:
    """Map a free-form property name onto the custom tag namespace."""
    slug = re.sub(r"[^a-z0-9_\-]+", "_", raw.strip().lower()).strip("_")[:64]
    return f"{CUSTOM_TAG_PREFIX}{slug or 'unnamed'}"


def _coerce_number(value) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = value
    elif isinstance(value, str):
        try:
            num = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(num):
        return None
    if isinstance(num, float) and num.is_integer():
        return int(num)
    return num


def normalize_tags(raw, field_prefix: str = "tags", url_check=None) -> tuple[dict, list[FieldError]]:
    """
    Returns (normalized, errors). Numeric tags are coerced to numbers, every
    other value is kept as a trimmed string. Nothing is dropped silently.
    """
    errors: list[FieldError] = []
    out: dict = {}
    if raw is None:
        return out, errors
    if not isinstance(raw, dict):
        return out, [FieldError(field_prefix, "invalid", "tags must be an object")]

    for key, value in raw.items():
        path = f"{field_prefix}.{key}"
        if not isinstance(key, str) or not is_known_key(key):
            errors.append(FieldError(path, "unknown_tag", f"unknown tag key '{key}' (use '{CUSTOM_TAG_PREFIX}<name>' for custom tags)"))
            continue
        if value is None or (isinstance(value, str) and not value.strip()):
            continue

        definition = TAG_DEFINITIONS.get(key)
        if definition is not None and definition.data_type == "number":
            num = _coerce_number(value)
            if num is None:
                errors.append(FieldError(path, "invalid_number", f"'{key}' must be a number"))
                continue
            if definition.min_value is not None and num < definition.min_value:
                errors.append(FieldError(path, "out_of_range", f"'{key}' must be >= {definition.min_value}"))
                continue
            if definition.max_value is not None and num > definition.max_value:
                errors.append(FieldError(path, "out_of_range", f"'{key}' must be <= {definition.max_value}"))
                continue
            out[key] = num
            continue

        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            errors.append(FieldError(path, "invalid", f"'{key}' must be a string or number"))
            continue
        text = str(value).strip()
        max_length = definition.max_length if definition else _DEFAULT_MAX_LENGTH
        if len(text) > max_length:
            errors.append(FieldError(path, "too_long", f"'{key}' exceeds {max_length} characters"))
            continue
        if definition is not None:
            if definition.enum_values and text.lower() not in definition.enum_values:
                errors.append(FieldError(path, "invalid_choice", f"'{key}' must be one of {', '.join(definition.enum_values)}"))
                continue
            if definition.enum_values:
                text = text.lower()
            if definition.pattern and not re.match(definition.pattern, text):
                errors.append(FieldError(path, "invalid_format", f"'{key}' has an invalid format"))
                continue
            if definition.data_type == "url" and url_check is not None and not url_check(text):
                errors.append(FieldError(path, "invalid_url", f"'{key}' must be an http(s) URL"))
                continue
        out[key] = text
    return out, errors
