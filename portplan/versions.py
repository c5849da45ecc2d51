# SPDX-License-Identifier: MIT

import itertools
from enum import Enum

from portplan.exceptions import GenericError


class Comparison(Enum):
    LESS = -1
    EQUAL = 0
    GREATER = 1


def _sign(n):
    if n < 0:
        return Comparison.LESS
    if n > 0:
        return Comparison.GREATER
    return Comparison.EQUAL


# Splits a primary version into (kind, value) tokens.
# Numeric runs become (1, int), letter runs become (0, str); any other
# character only separates tokens. A string without letters or digits is kept
# as a single opaque token.
def parse_components(v):
    out = []
    n = 0

    while n < len(v):
        c = v[n]
        if "0" <= c <= "9":
            d = 0
            while n < len(v) and "0" <= v[n] <= "9":
                d = (d * 10) + int(v[n])
                n += 1
            out.append((1, d))
        elif c.isalpha():
            start = n
            while n < len(v) and v[n].isalpha():
                n += 1
            out.append((0, v[start:n]))
        else:
            n += 1

    if not out:
        out.append((0, v))
    return out


def compare_primary(a, b):
    for c1, c2 in itertools.zip_longest(parse_components(a), parse_components(b)):
        # The shorter sequence is padded as lower.
        if c1 is None:
            return Comparison.LESS
        if c2 is None:
            return Comparison.GREATER
        if c1 == c2:
            continue
        # Numbers rank above letters.
        if c1[0] != c2[0]:
            return _sign(c1[0] - c2[0])
        return Comparison.LESS if c1[1] < c2[1] else Comparison.GREATER

    # Spellings such as "1.0" and "1.00" tokenize identically; the raw text
    # keeps the order total and consistent with equality.
    if a == b:
        return Comparison.EQUAL
    return Comparison.LESS if a < b else Comparison.GREATER


def compare_versions(a, b):
    result = compare_primary(a.primary, b.primary)
    if result != Comparison.EQUAL:
        return result
    return _sign(a.revision - b.revision)


class Version:
    __slots__ = ["primary", "revision"]

    def __init__(self, primary, revision=0):
        self.primary = str(primary)
        self.revision = int(revision)
        if self.revision < 0:
            raise GenericError("Port revision must not be negative: {}".format(revision))

    # Accepts "<primary>" or "<primary>#<revision>".
    @staticmethod
    def parse(text):
        text = str(text)
        primary, sep, revision = text.rpartition("#")
        if not sep:
            return Version(text, 0)
        if not revision.isdecimal():
            raise GenericError("Invalid port revision in version {}".format(text))
        return Version(primary, int(revision))

    def compare(self, other):
        return compare_versions(self, other)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.primary == other.primary and self.revision == other.revision

    def __hash__(self):
        return hash((self.primary, self.revision))

    def __lt__(self, other):
        return compare_versions(self, other) == Comparison.LESS

    def __le__(self, other):
        return compare_versions(self, other) != Comparison.GREATER

    def __gt__(self, other):
        return compare_versions(self, other) == Comparison.GREATER

    def __ge__(self, other):
        return compare_versions(self, other) != Comparison.LESS

    def __str__(self):
        return "{}#{}".format(self.primary, self.revision)

    def __repr__(self):
        return "Version({!r}, {})".format(self.primary, self.revision)
