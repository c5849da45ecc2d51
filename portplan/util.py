# SPDX-License-Identifier: MIT

import contextlib
import fcntl
import os
import sys
import tempfile

import colorama


def eprint(*args, **kwargs):
    return print(*args, **kwargs, file=sys.stderr)


def _log(msg, color=None):
    prefix = "{}portplan{}: ".format(colorama.Style.BRIGHT, colorama.Style.RESET_ALL)
    if color is None:
        eprint(prefix + str(msg))
    else:
        eprint("{}{}{}{}".format(prefix, color, msg, colorama.Style.RESET_ALL))


def log_info(msg):
    _log(msg)


def log_warn(msg):
    _log(msg, colorama.Fore.YELLOW)


def log_err(msg):
    _log(msg, colorama.Fore.RED)


# Per-user state such as the default binary cache.
def find_home():
    home = os.environ.get("PORTPLAN_HOME")
    if home:
        return home
    return os.path.expanduser("~/.portplan")


def ensure_dir(path):
    os.makedirs(path, exist_ok=True)


# Serializes writers of the files in a directory (e.g., the status database).
@contextlib.contextmanager
def lock_directory(directory, mode=fcntl.LOCK_EX):
    ensure_dir(directory)
    with open(os.path.join(directory, ".portplan_lock"), "w") as f:
        fcntl.flock(f.fileno(), mode)
        try:
            yield
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)


# Writes to a temporary file next to path and renames it into place on success.
@contextlib.contextmanager
def atomic_open(path, mode="w"):
    directory = os.path.dirname(os.path.abspath(path))
    ensure_dir(directory)
    with tempfile.NamedTemporaryFile(mode, dir=directory, delete=False) as f:
        try:
            yield f
        except BaseException:
            os.unlink(f.name)
            raise
    os.rename(f.name, path)
