from typing import Any, Dict, List, Mapping, Optional

from .errors import ValidationError


def require_body(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_str(data: Mapping[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def optional_str(data: Mapping[str, Any], field: str) -> Optional[str]:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip() or None


def _as_int(value: Any, field: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field} must be an integer")


def require_int(data: Mapping[str, Any], field: str, minimum: Optional[int] = None) -> int:
    if data.get(field) is None:
        raise ValidationError(f"{field} is required")
    value = _as_int(data[field], field)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return value


def optional_int(data: Mapping[str, Any], field: str) -> Optional[int]:
    if data.get(field) is None:
        return None
    return _as_int(data[field], field)


def optional_bool(data: Mapping[str, Any], field: str) -> Optional[bool]:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


def optional_number(data: Mapping[str, Any], field: str, minimum: Optional[float] = None) -> Optional[float]:
    value = data.get(field)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return float(value)


def require_list(data: Mapping[str, Any], field: str, min_items: int = 0) -> List[Any]:
    value = data.get(field)
    if not isinstance(value, list):
        raise ValidationError(f"{field} array is required")
    if len(value) < min_items:
        raise ValidationError(f"At least {min_items} {field} entry is required")
    return value


def optional_attributes(data: Mapping[str, Any], field: str = "selectedAttributes") -> Dict[str, str]:
    value = data.get(field)
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ValidationError(f"{field} must map strings to strings")
    return dict(value)
