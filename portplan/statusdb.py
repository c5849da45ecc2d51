# SPDX-License-Identifier: MIT

import collections
import os
from enum import Enum

import yaml

import portplan.base as _base
import portplan.util as _util
from portplan.exceptions import GenericError, RecipeError
from portplan.specs import PackageSpec
from portplan.versions import Version


class InstallState(Enum):
    INSTALLED = "installed"
    # A previous operation was interrupted after it started to install files.
    HALF_INSTALLED = "half-installed"


# dependencies: PackageSpecs the package was built against.
# abi: content identity of the build, if known.
InstalledRecord = collections.namedtuple(
    "InstalledRecord",
    ["spec", "version", "features", "state", "dependencies", "abi"],
    defaults=[frozenset(), InstallState.INSTALLED, (), None],
)


def _parse_spec(text):
    name, sep, triplet = text.partition(":")
    if not sep or not name or not triplet:
        raise RecipeError("Invalid package spec {!r} in status database".format(text))
    return PackageSpec(name, triplet)


def record_from_yml(yml):
    return InstalledRecord(
        PackageSpec(yml["name"], yml["triplet"]),
        Version.parse(str(yml["version"])),
        features=frozenset(yml.get("features", [])),
        state=InstallState(yml.get("state", "installed")),
        dependencies=tuple(sorted(_parse_spec(s) for s in yml.get("dependencies", []))),
        abi=yml.get("abi"),
    )


def record_to_yml(record):
    yml = {
        "name": record.spec.name,
        "triplet": record.spec.triplet,
        "version": str(record.version),
        "state": record.state.value,
    }
    if record.features:
        yml["features"] = sorted(record.features)
    if record.dependencies:
        yml["dependencies"] = [str(s) for s in sorted(record.dependencies)]
    if record.abi is not None:
        yml["abi"] = record.abi
    return yml


# Read-only view over the installed packages; lookups are by exact spec.
class StatusDatabase:
    def __init__(self, records=()):
        self._records = dict()
        for record in records:
            if record.spec in self._records:
                raise GenericError("Duplicate status entry for {}".format(record.spec))
            self._records[record.spec] = record

    def find(self, spec):
        return self._records.get(spec)

    def find_installed(self, spec):
        record = self._records.get(spec)
        if record is None or record.state != InstallState.INSTALLED:
            return None
        return record

    def all(self):
        return [self._records[spec] for spec in sorted(self._records)]

    def __len__(self):
        return len(self._records)


# Persistence of the status database in <installed>/status.yml.
# Only the execution layer writes to this file.
class StatusFile:
    def __init__(self, path):
        self.path = path

    def load(self):
        try:
            yml = _base.load_yaml_file(self.path)
        except FileNotFoundError:
            return StatusDatabase()
        if yml is None:
            return StatusDatabase()
        _base.validate_yaml(yml, self.path, "status", strict=True)
        return StatusDatabase(record_from_yml(p) for p in yml.get("packages", []))

    def store(self, db):
        yml = {"packages": [record_to_yml(r) for r in db.all()]}
        with _util.atomic_open(self.path) as f:
            yaml.safe_dump(yml, f, sort_keys=False)

    def update(self, record):
        directory = os.path.dirname(os.path.abspath(self.path))
        with _util.lock_directory(directory):
            records = {r.spec: r for r in self.load().all()}
            records[record.spec] = record
            self.store(StatusDatabase(records.values()))

    def remove(self, spec):
        directory = os.path.dirname(os.path.abspath(self.path))
        with _util.lock_directory(directory):
            records = [r for r in self.load().all() if r.spec != spec]
            self.store(StatusDatabase(records))
