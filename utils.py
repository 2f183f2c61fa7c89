import json
import logging
import math
import sys
from datetime import datetime, timezone
from typing import Any

from constants import LOG_LEVEL


class JSONFormatter(logging.Formatter):
    """JSON structured log formatter."""
    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)
        if hasattr(record, 'estimation'):
            log_entry['estimation'] = record.estimation
        return json.dumps(log_entry)


def setup_logging(level: str = LOG_LEVEL, json_output: bool = False) -> None:
    """Configure application logging with a single stdout handler."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(name)s] %(levelname)s: %(message)s'
        ))

    root.handlers = [handler]

    # openpyxl and pulp are chatty at DEBUG
    for name in ['openpyxl', 'pulp']:
        logging.getLogger(name).setLevel(logging.WARNING)


def safe_parse_to_num(text: str) -> int | float:
    """
    Parses a string into a float or int, safely handling commas.
    Raises ValueError if parsing is not possible.
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError('Input cannot be empty.')

    cleaned_text = text.replace(',', '').strip()

    if '.' in cleaned_text or 'e' in cleaned_text.lower():
        try:
            num_float = float(cleaned_text)
        except ValueError:
            raise ValueError(f'Could not convert {text} to float.') from None
        if num_float.is_integer():
            return int(num_float)
        return num_float
    try:
        return int(cleaned_text)
    except ValueError:
        raise ValueError(f'Could not convert {text} to integer.') from None


def to_number(value: Any, default: float = 0) -> int | float:
    """
    Reads a form value as a number. Empty strings, None, NaN, infinities and
    anything unparsable come back as `default`; this never raises.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return default
        return value
    if isinstance(value, str):
        try:
            num = safe_parse_to_num(value)
        except ValueError:
            return default
        if isinstance(num, float) and not math.isfinite(num):
            return default
        return num
    return default


def format_diameter(diameter_mm: int | float) -> str:
    """Formats a bar diameter the way it is printed on a schedule, e.g. 'Ø12'."""
    if float(diameter_mm).is_integer():
        return f'Ø{int(diameter_mm)}'
    return f'Ø{diameter_mm:g}'


def ceil_clean(value: float, digits: int = 6) -> int:
    """Rounds up after discarding float noise below `digits` decimals (8.000000000001 -> 8)."""
    return math.ceil(round(value, digits))
