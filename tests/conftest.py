"""Shared helpers for the planning tests."""
import pytest

from portplan.ports import MemoryPortProvider, Recipe
from portplan.specs import PackageSpec
from portplan.statusdb import InstalledRecord, InstallState, StatusDatabase
from portplan.versions import Version

TARGET = "x64-linux"
HOST = "x64-linux"


def spec(name, triplet=TARGET):
    return PackageSpec(name, triplet)


def recipe(name, version="1.0", **kwargs):
    return Recipe(name, version, **kwargs)


def installed(name, version="1.0", triplet=TARGET, features=(), deps=(), state=None, abi=None):
    return InstalledRecord(
        PackageSpec(name, triplet),
        Version.parse(version),
        features=frozenset(features),
        state=state or InstallState.INSTALLED,
        dependencies=tuple(PackageSpec(*d.split(":")) for d in deps),
        abi=abi,
    )


def provider(*recipes):
    return MemoryPortProvider(recipes)


def status(*records):
    return StatusDatabase(records)


@pytest.fixture
def empty_status():
    return StatusDatabase()
