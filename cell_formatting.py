"""Presentation formats for cell display strings.

Number formats: automatic, localized, plain, compact, dollar, euro, yen,
percent, scientific, accounting, or a single "{:spec}" format spec.
Date/time/datetime formats: automatic, localized, distance, calendar
(datetime only), or any strftime pattern.
Text formats: uppercase, lowercase, capitalize.
"""

import datetime as dt
import re

from cell_coercion import coerce_datetime, coerce_number, coerce_time

_CURRENCY = {"dollar": "$", "euro": "€", "yen": "¥", "accounting": "$"}
_COMPACT_UNITS = [(1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K")]
_FORMAT_SPEC_RE = re.compile(r"^\{:([^{}]*)\}$")


def _trim_float(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_number(value, fmt=None) -> str:
    if value is None or value == "":
        return ""
    try:
        num = coerce_number(value)
    except (TypeError, ValueError):
        return str(value)
    if num is None:
        return ""

    if fmt in (None, "", "automatic"):
        if isinstance(num, float) and not num.is_integer():
            return f"{num:,}"
        return f"{int(num):,}" if isinstance(num, float) else f"{num:,}"
    if fmt == "localized":
        return f"{num:,.2f}"
    if fmt == "plain":
        return str(num)
    if fmt == "compact":
        for threshold, suffix in _COMPACT_UNITS:
            if abs(num) >= threshold:
                return _trim_float(f"{num / threshold:.1f}") + suffix
        return _trim_float(f"{num:.1f}")
    if fmt in ("dollar", "euro", "yen", "accounting"):
        symbol = _CURRENCY[fmt]
        digits = 0 if fmt == "yen" else 2
        body = f"{symbol}{abs(num):,.{digits}f}"
        if num < 0:
            return f"({body})" if fmt == "accounting" else f"-{body}"
        return body
    if fmt in ("percent", "percentage"):
        return _trim_float(f"{num * 100:,.2f}") + "%"
    if fmt == "scientific":
        return f"{num:.2e}"
    spec = _FORMAT_SPEC_RE.match(fmt)
    if spec:
        try:
            return format(num, spec.group(1))
        except ValueError:
            pass
    return f"{num:,}"


def _relative(value: dt.datetime, now: dt.datetime) -> str:
    diff = (value - now).total_seconds()
    minutes = round(diff / 60)
    hours = round(diff / 3600)
    days = round(diff / 86400)

    def phrase(amount, unit):
        if amount > 0:
            return f"in {amount} {unit}"
        return f"{-amount} {unit} ago"

    if abs(minutes) < 1:
        return "just now"
    if abs(minutes) < 60:
        return phrase(minutes, "minutes")
    if abs(hours) < 24:
        return phrase(hours, "hours")
    if abs(days) < 30:
        return phrase(days, "days")
    months = round(days / 30)
    if abs(months) < 12:
        return phrase(months, "months")
    return phrase(round(days / 365), "years")


def _clock(value) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def format_date(value, fmt=None, now=None) -> str:
    if value is None or value == "":
        return ""
    try:
        stamp = coerce_datetime(value)
    except (TypeError, ValueError):
        return str(value)
    if stamp is None:
        return ""
    day = stamp.date()
    if fmt == "localized":
        return f"{day:%b} {day.day}, {day.year}"
    if fmt == "distance":
        return _relative(stamp, now or dt.datetime.now())
    if fmt and "%" in fmt:
        return day.strftime(fmt)
    return day.isoformat()


def format_time(value, fmt=None) -> str:
    if value is None or value == "":
        return ""
    try:
        clock = coerce_time(value)
    except (TypeError, ValueError):
        return str(value)
    if clock is None:
        return ""
    if fmt == "localized":
        return _clock(clock)
    if fmt and "%" in fmt:
        return clock.strftime(fmt)
    if fmt == "automatic" or clock.second == 0:
        return f"{clock:%H:%M}"
    return f"{clock:%H:%M:%S}"


def format_datetime(value, fmt=None, now=None) -> str:
    if value is None or value == "":
        return ""
    try:
        stamp = coerce_datetime(value)
    except (TypeError, ValueError):
        return str(value)
    if stamp is None:
        return ""
    now = now or dt.datetime.now()
    if fmt == "localized":
        return f"{stamp:%b} {stamp.day}, {stamp.year} {_clock(stamp)}"
    if fmt == "distance":
        return _relative(stamp, now)
    if fmt == "calendar":
        return _calendar(stamp, now)
    if fmt and "%" in fmt:
        return stamp.strftime(fmt)
    if fmt == "automatic":
        return stamp.isoformat()
    return stamp.strftime("%Y-%m-%d %H:%M:%S")


def _calendar(stamp: dt.datetime, now: dt.datetime) -> str:
    delta = (stamp.date() - now.date()).days
    clock = _clock(stamp)
    if delta == 0:
        return f"Today at {clock}"
    if delta == 1:
        return f"Tomorrow at {clock}"
    if delta == -1:
        return f"Yesterday at {clock}"
    if 1 < delta < 7:
        return f"{stamp:%A} at {clock}"
    return f"{stamp:%b} {stamp.day} {clock}"


def format_text(value, fmt=None) -> str:
    if value is None:
        return ""
    text = str(value)
    if fmt == "uppercase":
        return text.upper()
    if fmt == "lowercase":
        return text.lower()
    if fmt == "capitalize":
        return re.sub(r"\b\w", lambda m: m.group(0).upper(), text)
    return text


def format_phone(value, pattern=None) -> str:
    if not value:
        return ""
    cleaned = re.sub(r"\D", "", str(value))
    if pattern == "international" and len(cleaned) >= 10:
        return f"+{cleaned[0]} ({cleaned[1:4]}) {cleaned[4:7]}-{cleaned[7:11]}"
    if len(cleaned) == 10:
        return f"({cleaned[:3]}) {cleaned[3:6]}-{cleaned[6:]}"
    return str(value)
