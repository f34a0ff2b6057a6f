import datetime as dt
import re

import numpy as np
import pandas as pd

TRUE_WORDS = {"1", "true", "t", "yes", "y", "on"}
FALSE_WORDS = {"0", "false", "f", "no", "n", "off"}
TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])(:([0-5][0-9]))?$")


def is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        result = pd.isna(value)
    except (TypeError, ValueError):
        return False
    return bool(result) if np.ndim(result) == 0 else False


def normalize_scalar(value):
    """Turn numpy/pandas scalars into plain python values, missing into None."""
    if value is None:
        return None
    if not isinstance(value, str) and is_missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, pd.Timedelta):
        return value.to_pytimedelta()
    if isinstance(value, np.generic):
        return value.item()
    return value


def coerce_number(value):
    value = normalize_scalar(value)
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    stripped = str(value).strip().replace(",", "")
    if stripped == "":
        return None
    try:
        return int(stripped)
    except ValueError:
        return float(stripped)


def coerce_boolean(value):
    value = normalize_scalar(value)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    lowered = str(value).strip().lower()
    if lowered == "":
        return None
    if lowered in TRUE_WORDS:
        return True
    if lowered in FALSE_WORDS:
        return False
    raise ValueError(f"Cannot coerce '{value}' to boolean")


def coerce_datetime(value):
    value = normalize_scalar(value)
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip() == "":
        return None
    return pd.to_datetime(value, errors="raise").to_pydatetime()


def coerce_date(value):
    value = normalize_scalar(value)
    if isinstance(value, dt.date) and not isinstance(value, dt.datetime):
        return value
    parsed = coerce_datetime(value)
    return parsed.date() if parsed is not None else None


def coerce_time(value):
    value = normalize_scalar(value)
    if value is None:
        return None
    if isinstance(value, dt.time):
        return value
    if isinstance(value, dt.datetime):
        return value.time()
    stripped = str(value).strip()
    if stripped == "":
        return None
    match = TIME_RE.match(stripped)
    if not match:
        raise ValueError(f"Cannot coerce '{value}' to time")
    seconds = int(match.group(4)) if match.group(4) else 0
    return dt.time(int(match.group(1)), int(match.group(2)), seconds)


def coerce_text(value):
    value = normalize_scalar(value)
    if value is None:
        return ""
    return str(value)

