"""
Console output helpers.

Every line is prefixed with a bracket tag ([OK], [INFO], [WARNING], [ERROR])
and written through tqdm so messages from worker threads do not tear an active
progress bar.
"""

import threading

from tqdm import tqdm

_quiet = False
_write_lock = threading.Lock()


def set_quiet(quiet):
    """Silence everything except [ERROR] lines"""
    global _quiet
    _quiet = quiet


def log(tag, message):
    if _quiet and tag != "ERROR":
        return
    with _write_lock:
        tqdm.write(f"[{tag}] {message}")


def banner(title, width=60):
    """Print a section header in the style of the report"""
    if _quiet:
        return
    with _write_lock:
        tqdm.write("#" * width)
        tqdm.write(f"## {title}")


def echo(line=""):
    """Untagged line, printed even when quiet"""
    with _write_lock:
        tqdm.write(line)
