from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import inspect


def json_safe_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {str(k): json_safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe_value(v) for v in value]
    return str(value)


def model_to_dict(obj: Any) -> Optional[Dict[str, Any]]:
    """Column values of an ORM instance as a JSON-safe dict."""
    if obj is None:
        return None
    mapper = inspect(obj).mapper
    return {attr.key: json_safe_value(getattr(obj, attr.key)) for attr in mapper.column_attrs}
