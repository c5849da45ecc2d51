# SPDX-License-Identifier: MIT

# Platform expressions select triplets, e.g. "linux & !arm" or "windows | osx".
# Identifiers are matched against the tag set of a triplet (see triplet_tags()).
# "," is accepted as an alternative spelling of "|".

import collections
import re

from portplan.exceptions import GenericError

PlatformIdent = collections.namedtuple("PlatformIdent", ["name"])
PlatformNot = collections.namedtuple("PlatformNot", ["operand"])
PlatformAnd = collections.namedtuple("PlatformAnd", ["operands"])
PlatformOr = collections.namedtuple("PlatformOr", ["operands"])

_token_re = re.compile(r"\s*(?:([a-z0-9_-]+)|([!&|,()]))")


def _tokenize(text):
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _token_re.match(text, pos)
        if m is None:
            raise GenericError(
                "Unexpected character {!r} in platform expression {!r}".format(text[pos], text)
            )
        if m.group(1) is not None:
            tokens.append(("ident", m.group(1)))
        else:
            tokens.append(("op", m.group(2)))
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, text):
        self.text = text
        self.tokens = _tokenize(text)
        self.n = 0

    def error(self, what):
        return GenericError("{} in platform expression {!r}".format(what, self.text))

    def peek(self):
        if self.n < len(self.tokens):
            return self.tokens[self.n]
        return (None, None)

    def take_op(self, ops):
        kind, value = self.peek()
        if kind == "op" and value in ops:
            self.n += 1
            return True
        return False

    def parse(self):
        if not self.tokens:
            raise self.error("Empty expression")
        expr = self.parse_or()
        if self.n != len(self.tokens):
            raise self.error("Unexpected token {!r}".format(self.peek()[1]))
        return expr

    def parse_or(self):
        operands = [self.parse_and()]
        while self.take_op("|,"):
            operands.append(self.parse_and())
        if len(operands) == 1:
            return operands[0]
        return PlatformOr(tuple(operands))

    def parse_and(self):
        operands = [self.parse_unary()]
        while self.take_op("&"):
            operands.append(self.parse_unary())
        if len(operands) == 1:
            return operands[0]
        return PlatformAnd(tuple(operands))

    def parse_unary(self):
        if self.take_op("!"):
            return PlatformNot(self.parse_unary())
        if self.take_op("("):
            expr = self.parse_or()
            if not self.take_op(")"):
                raise self.error("Missing closing parenthesis")
            return expr
        kind, value = self.peek()
        if kind != "ident":
            if value is None:
                raise self.error("Unexpected end")
            raise self.error("Unexpected token {!r}".format(value))
        self.n += 1
        return PlatformIdent(value)


def parse_platform_expr(text):
    return _Parser(text).parse()


def evaluate(expr, tags):
    if isinstance(expr, PlatformIdent):
        return expr.name in tags
    if isinstance(expr, PlatformNot):
        return not evaluate(expr.operand, tags)
    if isinstance(expr, PlatformAnd):
        return all(evaluate(e, tags) for e in expr.operands)
    if isinstance(expr, PlatformOr):
        return any(evaluate(e, tags) for e in expr.operands)
    raise AssertionError("Unexpected platform expression node")


# Derives the identifiers that are true for a triplet.
# extra_tags: optional mapping triplet -> iterable of identifiers that replaces
# the derived set (from portplan.yml).
def triplet_tags(triplet, *, host_triplet=None, extra_tags=None):
    if extra_tags and triplet in extra_tags:
        tags = set(extra_tags[triplet])
    else:
        components = triplet.split("-")
        tags = set(components)
        if "uwp" in tags or "mingw" in tags:
            tags.add("windows")
        if "windows" not in tags and "dynamic" not in tags:
            tags.add("static")
    if host_triplet is not None and triplet == host_triplet:
        tags.add("native")
    return frozenset(tags)


def platform_matches(text, triplet, *, host_triplet=None, extra_tags=None):
    if text is None:
        return True
    tags = triplet_tags(triplet, host_triplet=host_triplet, extra_tags=extra_tags)
    return evaluate(parse_platform_expr(text), tags)
