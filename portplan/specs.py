# SPDX-License-Identifier: MIT

import collections
import re

from portplan.exceptions import GenericError


class PackageSpec(collections.namedtuple("PackageSpec", ["name", "triplet"])):
    __slots__ = ()

    def __str__(self):
        return "{}:{}".format(self.name, self.triplet)


# A package spec as requested by a user or a dependency entry.
# features: explicitly requested features (never contains "core" or "*").
# default_features: whether the recipe's default features are wanted.
# all_features: "*" was requested.
FullPackageSpec = collections.namedtuple(
    "FullPackageSpec",
    ["spec", "features", "default_features", "all_features"],
    defaults=[(), True, False],
)

_name_re = re.compile(r"[a-z0-9]+(-[a-z0-9]+)*")
_feature_re = re.compile(r"[a-z0-9]+(-[a-z0-9]+)*|\*")
_triplet_re = re.compile(r"[a-z0-9_]+(-[a-z0-9_]+)*")
_spec_re = re.compile(r"(?P<name>[^\[\]:]+)(\[(?P<features>[^\]]*)\])?(:(?P<triplet>.+))?")


def check_port_name(name):
    if not _name_re.fullmatch(name):
        raise GenericError("Invalid port name {!r}".format(name))
    return name


def make_full_spec(spec, features=(), *, default_features=True):
    explicit = set()
    all_features = False
    for feature in features:
        if feature == "core":
            default_features = False
        elif feature == "*":
            all_features = True
        else:
            explicit.add(feature)
    return FullPackageSpec(spec, tuple(sorted(explicit)), default_features, all_features)


# Parses "name[feat1,feat2]:triplet"; the triplet part is optional.
def parse_package_spec(text, default_triplet):
    m = _spec_re.fullmatch(text.strip())
    if m is None:
        raise GenericError("Invalid package spec {!r}".format(text))

    name = check_port_name(m.group("name"))
    triplet = m.group("triplet") or default_triplet
    if not _triplet_re.fullmatch(triplet):
        raise GenericError("Invalid triplet {!r} in package spec {!r}".format(triplet, text))

    features = []
    if m.group("features") is not None:
        for feature in m.group("features").split(","):
            feature = feature.strip()
            if not _feature_re.fullmatch(feature):
                raise GenericError(
                    "Invalid feature {!r} in package spec {!r}".format(feature, text)
                )
            features.append(feature)

    return make_full_spec(PackageSpec(name, triplet), features)


def format_full_spec(full_spec):
    features = list(full_spec.features)
    if full_spec.all_features:
        features.append("*")
    if not full_spec.default_features:
        features.insert(0, "core")
    if not features:
        return str(full_spec.spec)
    return "{}[{}]:{}".format(full_spec.spec.name, ",".join(features), full_spec.spec.triplet)
