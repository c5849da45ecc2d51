# SPDX-License-Identifier: MIT

import collections
import hashlib
import json
import os

import portplan.base as _base
import portplan.util as _util
from portplan.exceptions import GenericError, RecipeError
from portplan.platform_expr import parse_platform_expr, platform_matches
from portplan.versions import Version

# A single dependency entry of a recipe or of one of its features.
# host: resolve against the host triplet instead of the requester's triplet.
# platform: platform expression; the entry is dropped if it does not match.
Dependency = collections.namedtuple(
    "Dependency",
    ["name", "host", "platform", "features", "default_features"],
    defaults=[False, None, (), True],
)

Feature = collections.namedtuple(
    "Feature", ["name", "description", "dependencies"], defaults=["", ()]
)


def _dependency_from_yml(yml):
    if isinstance(yml, str):
        return Dependency(yml)
    if not isinstance(yml, dict) or "name" not in yml:
        raise RecipeError("Invalid dependency entry {!r}".format(yml))
    return Dependency(
        yml["name"],
        host=yml.get("host", False),
        platform=yml.get("platform"),
        features=tuple(sorted(yml.get("features", []))),
        default_features=yml.get("default_features", True),
    )


def _dependency_to_yml(dep):
    yml = {"name": dep.name}
    if dep.host:
        yml["host"] = True
    if dep.platform is not None:
        yml["platform"] = dep.platform
    if dep.features:
        yml["features"] = list(dep.features)
    if not dep.default_features:
        yml["default_features"] = False
    return yml


class Recipe:
    def __init__(
        self,
        name,
        version,
        *,
        dependencies=(),
        features=(),
        default_features=(),
        supports=None,
        description="",
        build_steps=(),
    ):
        if isinstance(version, str):
            version = Version.parse(version)
        self.name = name
        self.version = version
        self.dependencies = tuple(
            Dependency(d) if isinstance(d, str) else d for d in dependencies
        )
        self.features = {f.name: f for f in features}
        self.default_features = frozenset(default_features)
        self.supports = supports
        self.description = description
        self.build_steps = [
            s if isinstance(s, _base.ScriptStep) else _base.ScriptStep.from_yml(s)
            for s in build_steps
        ]
        self._fingerprint = None

        for feature in self.default_features:
            if feature not in self.features:
                raise RecipeError(
                    "Port {} declares unknown default feature {}".format(name, feature)
                )
        for expr in self._all_platform_exprs():
            try:
                parse_platform_expr(expr)
            except GenericError as e:
                raise RecipeError("Port {}: {}".format(name, e))

    @staticmethod
    def from_yml(yml):
        features = []
        for feature_name, feature_yml in sorted(yml.get("features", dict()).items()):
            features.append(
                Feature(
                    feature_name,
                    description=feature_yml.get("description", ""),
                    dependencies=tuple(
                        _dependency_from_yml(d) for d in feature_yml.get("dependencies", [])
                    ),
                )
            )
        return Recipe(
            yml["name"],
            Version(str(yml["version"]), yml.get("revision", 0)),
            dependencies=[_dependency_from_yml(d) for d in yml.get("dependencies", [])],
            features=features,
            default_features=yml.get("default_features", []),
            supports=yml.get("supports"),
            description=yml.get("description", ""),
            build_steps=yml.get("build", []),
        )

    def to_yml(self):
        yml = {
            "name": self.name,
            "version": self.version.primary,
            "revision": self.version.revision,
        }
        if self.description:
            yml["description"] = self.description
        if self.supports is not None:
            yml["supports"] = self.supports
        if self.dependencies:
            yml["dependencies"] = [_dependency_to_yml(d) for d in self.dependencies]
        if self.default_features:
            yml["default_features"] = sorted(self.default_features)
        if self.features:
            yml["features"] = {
                f.name: {
                    "description": f.description,
                    "dependencies": [_dependency_to_yml(d) for d in f.dependencies],
                }
                for f in self.features.values()
            }
        if self.build_steps:
            yml["build"] = [s.to_yml() for s in self.build_steps]
        return yml

    def _all_platform_exprs(self):
        if self.supports is not None:
            yield self.supports
        for dep in self.dependencies:
            if dep.platform is not None:
                yield dep.platform
        for feature in self.features.values():
            for dep in feature.dependencies:
                if dep.platform is not None:
                    yield dep.platform

    # Digest over the canonical form of the recipe.
    @property
    def fingerprint(self):
        if self._fingerprint is None:
            text = json.dumps(self.to_yml(), sort_keys=True, separators=(",", ":"))
            self._fingerprint = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return self._fingerprint

    def is_supported(self, triplet, *, host_triplet=None, extra_tags=None):
        return platform_matches(
            self.supports, triplet, host_triplet=host_triplet, extra_tags=extra_tags
        )

    # Yields the dependency entries of the given features and, if core is set,
    # of the core recipe.
    def get_dependencies(self, features=(), *, core=True):
        if core:
            yield from self.dependencies
        for name in sorted(features):
            feature = self.features.get(name)
            if feature is None:
                raise GenericError("Port {} has no feature {}".format(self.name, name))
            yield from feature.dependencies


class PortProvider:
    def get_recipe(self, name):
        raise NotImplementedError()

    def all_recipes(self):
        raise NotImplementedError()


class MemoryPortProvider(PortProvider):
    def __init__(self, recipes=()):
        self._recipes = dict()
        for recipe in recipes:
            if recipe.name in self._recipes:
                raise GenericError("Duplicate port {}".format(recipe.name))
            self._recipes[recipe.name] = recipe

    def get_recipe(self, name):
        return self._recipes.get(name)

    def all_recipes(self):
        for name in sorted(self._recipes):
            yield self._recipes[name]


# Reads <root>/<name>/port.yml. Results are cached so that the provider is a
# stable snapshot for the duration of a planning run.
class DirectoryPortProvider(PortProvider):
    def __init__(self, root):
        self._root = root
        self._cache = dict()

    def get_recipe(self, name):
        if name in self._cache:
            return self._cache[name]

        path = os.path.join(self._root, name, "port.yml")
        try:
            yml = _base.load_yaml_file(path)
        except (FileNotFoundError, NotADirectoryError):
            recipe = None
        else:
            if _base.verbosity:
                _util.log_info("Loading port recipe {}".format(path))
            _base.validate_yaml(yml, path, "port", strict=True)
            if yml["name"] != name:
                raise RecipeError(
                    "Port recipe {} declares mismatching name {}".format(path, yml["name"])
                )
            recipe = Recipe.from_yml(yml)

        self._cache[name] = recipe
        return recipe

    def all_recipes(self):
        try:
            names = sorted(os.listdir(self._root))
        except FileNotFoundError:
            return
        for name in names:
            recipe = self.get_recipe(name)
            if recipe is not None:
                yield recipe
