# SPDX-License-Identifier: MIT

import re
import sys

_file_spec_re = re.compile(r"(fd|path):(.+)")


# Accepts "fd:<n>", "path:<file>" or "-" (stdout).
def open_file_from_cli(spec, mode="wt"):
    if spec == "-":
        return sys.stdout
    m = _file_spec_re.fullmatch(spec)
    if m is None:
        raise ValueError("Illegal file specification on CLI: {}".format(spec))
    kind, value = m.groups()
    if kind == "fd":
        if not value.isdigit():
            raise ValueError("Illegal file descriptor on CLI: {}".format(value))
        return open(int(value), mode, closefd=False)
    return open(value, mode)
