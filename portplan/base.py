# SPDX-License-Identifier: MIT

import os
import re

import jsonschema
import yaml

import portplan.util as _util
from portplan.exceptions import GenericError, RecipeError

verbosity = False

global_yaml_loader = yaml.SafeLoader
global_schema = None
global_validators = dict()
native_yaml_available = False

try:
    global_yaml_loader = yaml.CSafeLoader
    native_yaml_available = True
except AttributeError:
    pass


def load_yaml_file(path):
    with open(path, "r") as f:
        return yaml.load(f, Loader=global_yaml_loader)


def _get_validator(kind):
    global global_schema
    if kind in global_validators:
        return global_validators[kind]
    if global_schema is None:
        schema_path = os.path.join(os.path.dirname(__file__), "schema.yml")
        global_schema = load_yaml_file(schema_path)
    # Sub-schemas refer to the shared definitions via "#/definitions/...".
    schema = dict(global_schema[kind])
    schema["definitions"] = global_schema["definitions"]
    validator = jsonschema.Draft7Validator(schema)
    global_validators[kind] = validator
    return validator


# Returns true if the document validates without any errors.
# With strict=True, errors are raised as RecipeError instead.
def validate_yaml(yml, path, kind, *, strict=False):
    any_errors = False
    n = 0
    for e in _get_validator(kind).iter_errors(yml):
        if n == 0:
            _util.log_err("Failed to validate {}".format(path))
        _util.log_err(
            "* Error in file: {}, YAML element: {}\n           {}".format(
                path, "/".join(str(elem) for elem in e.absolute_path), e.message
            )
        )
        any_errors = True
        n += 1
        if n >= 10:
            _util.log_err("Reporting only the first 10 errors")
            break

    if any_errors:
        if strict:
            raise RecipeError("Invalid {} file {}".format(kind, path))
        _util.log_warn("Validation issues will become hard errors in the future")
    return not any_errors


_var_re = re.compile(r"@([A-Z_][A-Z0-9_]*)@")


# Replaces @NAME@ references by the values in variables.
def substitute_vars(string, variables):
    def lookup(m):
        name = m.group(1)
        if name not in variables:
            raise GenericError("Unknown variable @{}@ in build step".format(name))
        return variables[name]

    return _var_re.sub(lookup, string)


class Config:
    def __init__(self, root, *, environ=None):
        if environ is None:
            environ = os.environ
        self.root = os.path.abspath(root)
        self._environ = environ

        cfg_path = os.path.join(self.root, "portplan.yml")
        try:
            self._yml = load_yaml_file(cfg_path) or dict()
        except FileNotFoundError:
            raise GenericError("No portplan.yml found in {}".format(self.root))
        validate_yaml(self._yml, cfg_path, "config")

    def _get_dir(self, key, default):
        subdir = self._yml.get("directories", dict()).get(key, default)
        return os.path.join(self.root, subdir)

    @property
    def ports_dir(self):
        return self._get_dir("ports", "ports")

    @property
    def installed_dir(self):
        return self._get_dir("installed", "installed")

    @property
    def status_path(self):
        return os.path.join(self.installed_dir, "status.yml")

    @property
    def packages_dir(self):
        return self._get_dir("packages", "packages")

    @property
    def buildtrees_dir(self):
        return self._get_dir("buildtrees", "buildtrees")

    @property
    def default_triplet(self):
        if "PORTPLAN_DEFAULT_TRIPLET" in self._environ:
            return self._environ["PORTPLAN_DEFAULT_TRIPLET"]
        return self._yml.get("triplets", dict()).get("default", "x64-linux")

    @property
    def host_triplet(self):
        if "PORTPLAN_HOST_TRIPLET" in self._environ:
            return self._environ["PORTPLAN_HOST_TRIPLET"]
        return self._yml.get("triplets", dict()).get("host", self.default_triplet)

    @property
    def triplet_tags(self):
        return self._yml.get("triplets", dict()).get("tags", dict())

    @property
    def binary_cache_enabled(self):
        return self._yml.get("binary_cache", dict()).get("enabled", True)

    @property
    def binary_cache_dir(self):
        path = self._yml.get("binary_cache", dict()).get("path")
        if path is None:
            return os.path.join(_util.find_home(), "archives")
        return os.path.join(self.root, os.path.expanduser(path))

    @property
    def binary_cache_read_only(self):
        return self._yml.get("binary_cache", dict()).get("read_only", False)

    def package_dir(self, spec):
        return os.path.join(self.packages_dir, "{}_{}".format(spec.name, spec.triplet))

    def buildtree_dir(self, spec):
        return os.path.join(self.buildtrees_dir, spec.name, spec.triplet)


def config_for_dir(path=None):
    if path is None:
        path = os.environ.get("PORTPLAN_ROOT", os.getcwd())
    if verbosity:
        _util.log_info("Using configuration from {}".format(path))
    return Config(path)


# One command of a recipe's build script. args is either a list of arguments
# or a string that is passed to /bin/sh.
class ScriptStep:
    __slots__ = ["args", "environ", "workdir", "quiet"]

    def __init__(self, args, *, environ=None, workdir=None, quiet=False):
        self.args = args
        self.environ = dict(environ or {})
        self.workdir = workdir
        self.quiet = quiet

    @staticmethod
    def from_yml(yml):
        return ScriptStep(
            yml["args"],
            environ=yml.get("environ"),
            workdir=yml.get("workdir"),
            quiet=yml.get("quiet", False),
        )

    def to_yml(self):
        yml = {"args": self.args}
        if self.environ:
            yml["environ"] = dict(self.environ)
        if self.workdir is not None:
            yml["workdir"] = self.workdir
        if self.quiet:
            yml["quiet"] = True
        return yml

    def command(self, variables):
        if isinstance(self.args, str):
            return ["/bin/sh", "-c", substitute_vars(self.args, variables)]
        return [substitute_vars(arg, variables) for arg in self.args]

    def environment(self, variables):
        return {k: substitute_vars(v, variables) for k, v in self.environ.items()}
