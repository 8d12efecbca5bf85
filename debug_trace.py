"""
debug_trace.py

Trace logging for the EmojiArt editor.
Enable by setting EMOJIART_TRACE=1 in the environment; set EMOJIART_TRACE_FILE
to also append every line to a log file.
"""

import os
import sys
import traceback
from datetime import datetime
from functools import wraps

DEBUG_TRACE = os.environ.get("EMOJIART_TRACE", "0") == "1"

# Gesture updates arrive once per frame (very verbose)
TRACE_GESTURE_UPDATES = os.environ.get("EMOJIART_TRACE_GESTURES", "0") == "1"

# Log file (None for stderr only)
LOG_FILE = os.environ.get("EMOJIART_TRACE_FILE") or None

_log_file = None


def _get_log_file():
    global _log_file
    if LOG_FILE and _log_file is None:
        try:
            _log_file = open(LOG_FILE, "a", encoding="utf-8")
        except OSError:
            return None
    return _log_file


def trace(msg: str, category: str = "INFO"):
    """Print a trace message with timestamp."""
    if not DEBUG_TRACE:
        return
    if category == "FRAME" and not TRACE_GESTURE_UPDATES:
        return

    timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    line = f"[{timestamp}] [{category}] {msg}"

    print(line, file=sys.stderr, flush=True)

    log_file = _get_log_file()
    if log_file:
        try:
            log_file.write(line + "\n")
            log_file.flush()
        except OSError:
            pass


def trace_exception(msg: str = "Exception"):
    """Print exception info."""
    if not DEBUG_TRACE:
        return
    trace(f"{msg}: {traceback.format_exc()}", "ERROR")


def trace_call(category: str = "CALL"):
    """Decorator to trace function calls."""
    def decorator(func):
        if not DEBUG_TRACE:
            return func

        @wraps(func)
        def wrapper(*args, **kwargs):
            func_name = func.__qualname__
            trace(f">>> {func_name}", category)
            try:
                result = func(*args, **kwargs)
                trace(f"<<< {func_name}", category)
                return result
            except Exception as e:
                trace(f"!!! {func_name} raised {type(e).__name__}: {e}", "ERROR")
                raise
        return wrapper
    return decorator


def close_log():
    """Close log file."""
    global _log_file
    if _log_file:
        try:
            _log_file.close()
        except OSError:
            pass
        _log_file = None
