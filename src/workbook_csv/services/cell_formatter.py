"""Display formatting of raw cell values.

Turns a cell's raw payload and its number format code into the text a
spreadsheet application shows. Covers the general number pattern, fixed /
grouped / percent / scientific formats and date-time formats, always with
four-digit years. Formatting failures fall back to ``str(value)``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import datetime, time
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Context, Decimal

from openpyxl.styles.numbers import BUILTIN_FORMATS, is_date_format
from openpyxl.utils.datetime import CALENDAR_WINDOWS_1900, from_excel, from_ISO8601, to_excel
from xlrd.biffh import error_text_from_code

from workbook_csv.utils.logging import get_logger

logger = get_logger(__name__)

GENERAL_FORMATS = frozenset({"", "general", "@"})
MAX_FRACTION_DIGITS = 30

# Builtin short-date formats are locale dependent; show the en-US rendering.
DISPLAY_FORMAT_OVERRIDES: dict[int, str] = {
    14: "m/d/yyyy",
    22: "m/d/yyyy h:mm",
}

_DECIMAL_CONTEXT = Context(prec=80)
_GENERAL_QUANTUM = Decimal(1).scaleb(-MAX_FRACTION_DIGITS)

_MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_DAY_NAMES = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
)

_CONDITION_RE = re.compile(r"\[(?:[<>=][^\]]*|(?![HhMmSs]+\])[A-Za-z]+\d*)\]")
_CURRENCY_RE = re.compile(r"\[\$([^\]-]*)(?:-[^\]]*)?\]")
_DATE_TOKEN_RE = re.compile(
    r'"[^"]*"'
    r"|\\."
    r"|\[(?:h+|m+|s+)\]"
    r"|\[[^\]]*\]"
    r"|am/pm|a/p"
    r"|e+|y+|m+|d+|h+|s+"
    r"|\.0+"
    r"|[_*]."
    r"|.",
    re.IGNORECASE | re.DOTALL,
)


def resolve_number_format(
    format_id: int, custom_formats: Mapping[int, str] | None = None
) -> str:
    """Map a number format id to its format code."""
    if format_id in DISPLAY_FORMAT_OVERRIDES:
        return DISPLAY_FORMAT_OVERRIDES[format_id]
    if format_id in BUILTIN_FORMATS:
        return BUILTIN_FORMATS[format_id]
    if custom_formats and format_id in custom_formats:
        return custom_formats[format_id]
    return "General"


def looks_numeric(text: str) -> bool:
    """Whether ``text`` parses as a finite floating point literal."""
    if "_" in text:
        return False
    try:
        number = float(text)
    except ValueError:
        return False
    return math.isfinite(number)


def format_general(value: float) -> str:
    """Render a number without exponent or float noise.

    Uses the shortest round-trip digits of the float and at most
    ``MAX_FRACTION_DIGITS`` fractional digits.
    """
    if not math.isfinite(value):
        return str(value)
    number = Decimal(repr(float(value)))
    exponent = number.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -MAX_FRACTION_DIGITS:
        number = number.quantize(
            _GENERAL_QUANTUM, rounding=ROUND_HALF_EVEN, context=_DECIMAL_CONTEXT
        )
    text = format(number, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("", "-0"):
        text = "0"
    return text


def normalize_record_number(value: float) -> str:
    """Render a BIFF number record.

    Integral values print with zero decimal places, other values with
    Python's default float conversion.
    """
    number = float(value)
    if number.is_integer():
        return f"{number:.0f}"
    return str(number)


def format_boolean(value: object) -> str:
    if isinstance(value, str):
        value = value.strip() not in ("", "0", "false", "FALSE")
    return "TRUE" if value else "FALSE"


def format_error_code(code: int) -> str:
    """Error literal for a BIFF error code, e.g. ``0x07`` -> ``#DIV/0!``."""
    return error_text_from_code.get(code, f"#ERR{code}!")


def _split_sections(number_format: str) -> list[str]:
    sections: list[str] = []
    current: list[str] = []
    in_quote = False
    escaped = False
    for ch in number_format:
        if escaped:
            current.append(ch)
            escaped = False
            continue
        if ch == "\\":
            escaped = True
        elif ch == '"':
            in_quote = not in_quote
        elif ch == ";" and not in_quote:
            sections.append("".join(current))
            current = []
            continue
        current.append(ch)
    sections.append("".join(current))
    return sections


class CellValueFormatter:
    """Formats raw numeric, date and boolean payloads for display.

    Args:
        epoch: Date system of the workbook (1900 or 1904 calendar).
    """

    def __init__(self, epoch: datetime = CALENDAR_WINDOWS_1900) -> None:
        self.epoch = epoch

    def format_number(self, value: float | int, number_format: str | None = None) -> str:
        """Render ``value`` through ``number_format``.

        Never raises: a format code that cannot be applied yields
        ``str(value)``.
        """
        try:
            return self._format_number(float(value), number_format or "General")
        except Exception as e:
            logger.debug(
                "Number format fell back to raw value",
                number_format=number_format,
                error=str(e),
                error_type=type(e).__name__,
            )
            return str(value)

    def format_iso_datetime(self, text: str, number_format: str | None = None) -> str:
        """Render an ISO 8601 cell value (``t="d"``)."""
        try:
            moment = from_ISO8601(text)
            serial = to_excel(moment, self.epoch)
            fmt = number_format or "General"
            if not is_date_format(fmt):
                fmt = "yyyy-mm-dd h:mm:ss"
            return self._format_number(float(serial), fmt)
        except Exception as e:
            logger.debug("ISO date fell back to raw value", value=text, error=str(e))
            return text

    # ------------------------------------------------------------------ #
    # Number formats
    # ------------------------------------------------------------------ #

    def _format_number(self, value: float, number_format: str) -> str:
        sections = _split_sections(number_format)
        section = sections[0]
        sign_in_section = False
        if value < 0 and len(sections) > 1 and sections[1].strip():
            section = sections[1]
            value = -value
            sign_in_section = True
        elif value == 0 and len(sections) > 2 and sections[2].strip():
            section = sections[2]

        section = _CONDITION_RE.sub("", section)
        if section.strip().lower() in GENERAL_FORMATS:
            return format_general(value)
        if is_date_format(section):
            return self._format_date(value, section)
        return self._format_pattern(value, section, sign_in_section)

    def _format_pattern(self, value: float, section: str, sign_in_section: bool) -> str:
        prefix: list[str] = []
        core: list[str] = []
        suffix: list[str] = []
        percent = 0

        i = 0
        while i < len(section):
            ch = section[i]
            target = suffix if core else prefix
            if ch == '"':
                end = section.find('"', i + 1)
                end = len(section) if end == -1 else end
                target.append(section[i + 1 : end])
                i = end + 1
                continue
            if ch == "\\" and i + 1 < len(section):
                target.append(section[i + 1])
                i += 2
                continue
            if ch == "_" and i + 1 < len(section):
                target.append(" ")
                i += 2
                continue
            if ch == "*" and i + 1 < len(section):
                i += 2
                continue
            if ch == "[":
                end = section.find("]", i)
                end = len(section) if end == -1 else end
                currency = _CURRENCY_RE.match(section, i)
                if currency:
                    target.append(currency.group(1))
                i = end + 1
                continue
            if ch in "0#?" or (ch in ".," and core and not suffix):
                if suffix:
                    core.extend(suffix)
                    suffix.clear()
                core.append(ch)
            elif ch in "Ee" and core and i + 1 < len(section) and section[i + 1] in "+-":
                core.append(section[i : i + 2].upper())
                i += 2
                continue
            elif ch == "%":
                percent += 1
                target.append(ch)
            elif ch == "@":
                target.append(format_general(value))
            else:
                target.append(ch)
            i += 1

        if not core:
            return "".join(prefix)

        pattern = "".join(core)
        if "/" in pattern:
            return format_general(value)

        scaled = value * (100**percent)
        negative = scaled < 0 and not sign_in_section
        body = self._render_core(abs(scaled), pattern)
        if negative and any(c not in "0.," for c in body):
            body = "-" + "".join(prefix) + body
        else:
            body = "".join(prefix) + body
        return body + "".join(suffix)

    @staticmethod
    def _render_core(value: float, pattern: str) -> str:
        if "E+" in pattern or "E-" in pattern:
            mantissa, _, exponent = pattern.replace("E-", "E+").partition("E+")
            frac = mantissa.partition(".")[2]
            decimals = sum(1 for c in frac if c in "0#?")
            text = f"{value:.{decimals}E}"
            digits, _, power = text.partition("E")
            sign = "-" if power.startswith("-") else "+"
            power_digits = power.lstrip("+-").lstrip("0") or "0"
            width = max(sum(1 for c in exponent if c == "0"), 1)
            return f"{digits}E{sign}{power_digits.zfill(width)}"

        int_pattern, _, frac_pattern = pattern.partition(".")
        scale = 0
        while int_pattern.endswith(","):
            scale += 1
            int_pattern = int_pattern[:-1]
        grouping = "," in int_pattern
        min_int = int_pattern.count("0")
        max_frac = sum(1 for c in frac_pattern if c in "0#?")
        min_frac = frac_pattern.count("0")

        number = Decimal(repr(value)).scaleb(-3 * scale)
        quantum = Decimal(1).scaleb(-max_frac)
        number = number.quantize(quantum, rounding=ROUND_HALF_UP, context=_DECIMAL_CONTEXT)
        text = format(number, "f")
        int_text, _, frac_text = text.partition(".")

        frac_text = frac_text.rstrip("0")
        if len(frac_text) < min_frac:
            frac_text = frac_text.ljust(min_frac, "0")

        if int_text == "0" and min_int == 0:
            int_text = ""
        int_text = int_text.zfill(min_int) if min_int else int_text
        if grouping and int_text:
            int_text = f"{int(int_text):,}".rjust(len(int_text), "0")

        if frac_text:
            return f"{int_text}.{frac_text}"
        if "." in pattern and max_frac == 0:
            return f"{int_text}."
        return int_text or ("0" if min_int == 0 and not frac_pattern else "")

    # ------------------------------------------------------------------ #
    # Date formats
    # ------------------------------------------------------------------ #

    def _format_date(self, value: float, section: str) -> str:
        tokens = [m.group(0) for m in _DATE_TOKEN_RE.finditer(section)]
        lowered = [t.lower() for t in tokens]
        twelve_hour = any(t in ("am/pm", "a/p") for t in lowered)
        sub_second = any(t.startswith(".0") for t in tokens)

        if sub_second:
            serial = value
        else:
            serial = round(value * 86400) / 86400
        moment = from_excel(serial, self.epoch)
        if isinstance(moment, time):
            moment = datetime.combine(self.epoch.date(), moment)
        elif not isinstance(moment, datetime):
            moment = datetime.combine(moment, time())

        kinds = [self._date_token_kind(t) for t in lowered]
        out: list[str] = []
        for idx, (token, low, kind) in enumerate(zip(tokens, lowered, kinds, strict=True)):
            if kind == "literal":
                out.append(self._literal(token))
            elif kind == "year":
                out.append(f"{moment.year:04d}")
            elif kind == "month_or_minute":
                if self._is_minute(kinds, idx):
                    out.append(f"{moment.minute:02d}" if len(low) > 1 else str(moment.minute))
                else:
                    out.append(self._month(moment, len(low)))
            elif kind == "day":
                out.append(self._day(moment, len(low)))
            elif kind == "hour":
                hour = moment.hour
                if twelve_hour:
                    hour = hour % 12 or 12
                out.append(f"{hour:02d}" if len(low) > 1 else str(hour))
            elif kind == "second":
                out.append(f"{moment.second:02d}" if len(low) > 1 else str(moment.second))
            elif kind == "fraction":
                digits = len(token) - 1
                fraction = moment.microsecond / 1_000_000
                out.append(f"{fraction:.{digits}f}"[1:])
            elif kind == "ampm":
                is_pm = moment.hour >= 12
                if low == "a/p":
                    marker = "P" if is_pm else "A"
                    out.append(marker if token[0].isupper() else marker.lower())
                else:
                    marker = "PM" if is_pm else "AM"
                    out.append(marker if token[0].isupper() else marker.lower())
            elif kind == "elapsed":
                out.append(self._elapsed(value, low))
        return "".join(out)

    @staticmethod
    def _date_token_kind(token: str) -> str:
        if token.startswith("[") and token[1:2] in ("h", "m", "s"):
            return "elapsed"
        first = token[0]
        if first in "ye" and token.isalpha():
            return "year"
        if first == "m" and token.isalpha():
            return "month_or_minute"
        if first == "d" and token.isalpha():
            return "day"
        if first == "h" and token.isalpha():
            return "hour"
        if first == "s" and token.isalpha():
            return "second"
        if token.startswith(".0"):
            return "fraction"
        if token in ("am/pm", "a/p"):
            return "ampm"
        return "literal"

    @staticmethod
    def _is_minute(kinds: list[str], idx: int) -> bool:
        time_kinds = ("year", "month_or_minute", "day", "hour", "second", "elapsed")
        for prev in reversed(kinds[:idx]):
            if prev in time_kinds:
                if prev in ("hour", "elapsed"):
                    return True
                break
        for nxt in kinds[idx + 1 :]:
            if nxt in time_kinds:
                return nxt == "second"
        return False

    @staticmethod
    def _literal(token: str) -> str:
        if token.startswith('"'):
            return token[1:-1]
        if token.startswith("\\"):
            return token[1:]
        if token.startswith("_"):
            return " "
        if token.startswith("*") or token.startswith("["):
            return ""
        return token

    @staticmethod
    def _month(moment: datetime, width: int) -> str:
        if width == 1:
            return str(moment.month)
        if width == 2:
            return f"{moment.month:02d}"
        name = _MONTH_NAMES[moment.month - 1]
        if width == 3:
            return name[:3]
        if width == 5:
            return name[0]
        return name

    @staticmethod
    def _day(moment: datetime, width: int) -> str:
        if width == 1:
            return str(moment.day)
        if width == 2:
            return f"{moment.day:02d}"
        name = _DAY_NAMES[moment.weekday()]
        return name[:3] if width == 3 else name

    @staticmethod
    def _elapsed(value: float, token: str) -> str:
        total_seconds = round(value * 86400)
        unit = token[1]
        width = len(token) - 2
        if unit == "h":
            amount = total_seconds // 3600
        elif unit == "m":
            amount = total_seconds // 60
        else:
            amount = total_seconds
        return str(amount).zfill(width)
