# SPDX-License-Identifier: MIT

import collections
from enum import Enum

import portplan.base as _base
import portplan.util as _util
from portplan.exceptions import (
    DependencyCycleError,
    GenericError,
    UnresolvablePackageError,
    UnsupportedPortError,
)
from portplan.platform_expr import platform_matches
from portplan.specs import FullPackageSpec, PackageSpec


class UnsupportedPortAction(Enum):
    ERROR = "error"
    WARN = "warn"


# features: every feature the package is (or will be) built with.
# requested_features: the features that were explicitly asked for, either by the
#     user or by dependency entries. These must be covered by an installed copy.
# recipe: None for installed packages that no longer have a port.
ResolvedNode = collections.namedtuple(
    "ResolvedNode",
    ["spec", "version", "features", "requested_features", "dependencies", "recipe"],
)


class ResolvedGraph:
    def __init__(self, nodes, order, requested, warnings, excluded):
        self.nodes = nodes  # Maps PackageSpec -> ResolvedNode.
        self.order = order  # PackageSpecs, dependencies first.
        self.requested = requested  # PackageSpecs that were requested explicitly.
        self.warnings = warnings
        self.excluded = excluded  # Maps PackageSpec -> reason; unsupported-and-warned.

    def __contains__(self, spec):
        return spec in self.nodes

    def __getitem__(self, spec):
        return self.nodes[spec]


class _NodeState(Enum):
    NULL = 0
    EXPANDING = 1
    ORDERED = 2


class _NodeInfo:
    __slots__ = [
        "spec",
        "recipe",
        "record",
        "features",
        "requested_features",
        "expanded_features",
        "expanded",
        "excluded",
        "edges",
    ]

    def __init__(self, spec, recipe, record):
        self.spec = spec
        self.recipe = recipe
        self.record = record  # Only fully installed records.
        self.features = set()
        self.requested_features = set()
        self.expanded_features = set()
        self.expanded = False
        self.excluded = False
        self.edges = set()

    @property
    def pending(self):
        if self.excluded:
            return False
        return not self.expanded or bool(self.features - self.expanded_features)


class _Resolver:
    def __init__(self, provider, status_db, *, host_triplet, unsupported_port_action, extra_tags):
        self._provider = provider
        self._status_db = status_db
        self._host_triplet = host_triplet
        self._unsupported_port_action = unsupported_port_action
        self._extra_tags = extra_tags
        self._infos = dict()  # Maps PackageSpec -> _NodeInfo.
        self._stack = []  # Stores PackageSpecs that need (re-)expansion.
        self.warnings = []
        self.excluded = dict()

    def _matches(self, expr, triplet):
        return platform_matches(
            expr, triplet, host_triplet=self._host_triplet, extra_tags=self._extra_tags
        )

    def _make_info(self, spec, requester):
        recipe = self._provider.get_recipe(spec.name)
        record = self._status_db.find_installed(spec)
        info = _NodeInfo(spec, recipe, record)

        if recipe is None:
            if record is None:
                raise UnresolvablePackageError(spec, required_by=requester)
            # Installed packages without a port are kept as they are.
            info.features.update(record.features)
            return info

        if not self._matches(recipe.supports, spec.triplet):
            if self._unsupported_port_action == UnsupportedPortAction.ERROR:
                raise UnsupportedPortError(spec, spec.triplet, required_by=requester)
            reason = "{} is only supported on '{}', which does not match {}".format(
                spec.name, recipe.supports, spec.triplet
            )
            self.warnings.append(
                "{}. This port is skipped because unsupported ports are allowed.".format(reason)
            )
            self.excluded[spec] = reason
            info.excluded = True
            return info

        if record is not None:
            # Keep the features of the installed copy as long as the port still has them.
            for feature in sorted(record.features):
                if feature in recipe.features:
                    info.features.add(feature)
                else:
                    self.warnings.append(
                        "Feature {} of installed package {} no longer exists in its port".format(
                            feature, spec
                        )
                    )
        return info

    def request(self, full_spec, requester=None):
        spec = full_spec.spec
        info = self._infos.get(spec)
        if info is None:
            info = self._make_info(spec, requester)
            self._infos[spec] = info
            if _base.verbosity:
                _util.log_info("Resolving {}".format(spec))

        if info.excluded:
            # Something still depends on an excluded port; this only works out
            # if an installed copy exists.
            if requester is not None and info.record is None:
                raise UnsupportedPortError(spec, spec.triplet, required_by=requester)
            return

        recipe = info.recipe
        for feature in full_spec.features:
            if recipe is None:
                if feature not in info.features:
                    raise GenericError(
                        "Package {} has no port and was not installed with feature {}".format(
                            spec, feature
                        )
                    )
            elif feature not in recipe.features:
                if requester is None:
                    raise GenericError("Port {} has no feature {}".format(spec.name, feature))
                raise GenericError(
                    "Port {} has no feature {} (required by {})".format(
                        spec.name, feature, requester
                    )
                )
            info.requested_features.add(feature)
            info.features.add(feature)

        if recipe is not None:
            if full_spec.all_features:
                info.requested_features.update(recipe.features)
                info.features.update(recipe.features)
            # Default features are never forced onto an installed copy.
            if full_spec.default_features and info.record is None:
                info.features.update(recipe.default_features)

        if info.pending:
            self._stack.append(spec)

    def _expand(self, info):
        spec = info.spec

        if info.recipe is None:
            info.expanded = True
            for dep_spec in info.record.dependencies:
                info.edges.add(dep_spec)
                self.request(FullPackageSpec(dep_spec, default_features=False), requester=spec)
            return

        new_features = info.features - info.expanded_features
        deps = list(info.recipe.get_dependencies(new_features, core=not info.expanded))
        info.expanded = True
        info.expanded_features.update(info.features)

        for dep in deps:
            if dep.platform is not None and not self._matches(dep.platform, spec.triplet):
                continue
            if dep.host:
                dep_spec = PackageSpec(dep.name, self._host_triplet)
            else:
                dep_spec = PackageSpec(dep.name, spec.triplet)
            full_dep = FullPackageSpec(
                dep_spec, tuple(dep.features), default_features=dep.default_features
            )

            # A port may depend on its own features, or on itself as a host
            # tool when host and target coincide. Anything else is a cycle.
            if dep_spec == spec:
                if dep.features:
                    self.request(full_dep, requester=spec)
                elif not dep.host:
                    raise DependencyCycleError([spec, spec])
                continue

            info.edges.add(dep_spec)
            self.request(full_dep, requester=spec)

    def close(self):
        while self._stack:
            spec = self._stack.pop()
            info = self._infos[spec]
            if not info.pending:
                continue
            self._expand(info)

    def make_nodes(self):
        nodes = dict()
        for spec, info in self._infos.items():
            if info.excluded:
                continue
            if info.recipe is not None:
                version = info.recipe.version
            else:
                version = info.record.version
            nodes[spec] = ResolvedNode(
                spec,
                version,
                frozenset(info.features),
                frozenset(info.requested_features),
                tuple(sorted(info.edges)),
                info.recipe,
            )
        return nodes


# Topologic sort of the resolved graph; raises on cycles.
# Roots and edges are visited in lexical order, so the result is deterministic.
def order_graph(nodes):
    states = {spec: _NodeState.NULL for spec in nodes}
    resolved_n = {spec: 0 for spec in nodes}
    order = []
    stack = []

    def visit(spec):
        if spec not in nodes:
            # Excluded ports do not take part in the ordering.
            return
        if states[spec] == _NodeState.NULL:
            states[spec] = _NodeState.EXPANDING
            stack.append(spec)
        elif states[spec] == _NodeState.EXPANDING:
            cycle = stack[stack.index(spec) :] + [spec]
            raise DependencyCycleError(cycle)
        else:
            # Packages that are already ordered do not need to be considered again.
            assert states[spec] == _NodeState.ORDERED

    for root in sorted(nodes):
        visit(root)

        while stack:
            spec = stack[-1]
            edges = nodes[spec].dependencies
            if resolved_n[spec] == len(edges):
                assert states[spec] == _NodeState.EXPANDING
                states[spec] = _NodeState.ORDERED
                stack.pop()
                order.append(spec)
            else:
                edge = edges[resolved_n[spec]]
                resolved_n[spec] += 1
                visit(edge)

    return order


def resolve_dependencies(
    requests,
    provider,
    status_db,
    *,
    host_triplet,
    unsupported_port_action=UnsupportedPortAction.ERROR,
    extra_tags=None,
):
    """Expands the requested FullPackageSpecs into their transitive closure.

    Raises UnsupportedPortError, UnresolvablePackageError or DependencyCycleError;
    no partial graph is ever returned.
    """
    resolver = _Resolver(
        provider,
        status_db,
        host_triplet=host_triplet,
        unsupported_port_action=unsupported_port_action,
        extra_tags=extra_tags,
    )

    requested = []
    for full_spec in requests:
        if not isinstance(full_spec, FullPackageSpec):
            full_spec = FullPackageSpec(full_spec)
        resolver.request(full_spec)
        requested.append(full_spec.spec)
        resolver.close()

    nodes = resolver.make_nodes()
    order = order_graph(nodes)
    return ResolvedGraph(
        nodes,
        order,
        sorted(set(s for s in requested if s in nodes)),
        resolver.warnings,
        resolver.excluded,
    )
