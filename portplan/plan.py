# SPDX-License-Identifier: MIT

import hashlib
from enum import Enum

import colorama
import yaml

import portplan.util as _util
from portplan.resolver import UnsupportedPortAction, resolve_dependencies
from portplan.statusdb import InstallState
from portplan.util import eprint
from portplan.versions import Comparison, compare_versions


class PlanMode(Enum):
    INSTALL = "install"
    UPGRADE = "upgrade"


class Provenance(Enum):
    ALREADY_INSTALLED = "already-installed"
    BUILD_REQUIRED = "build-required"
    CACHE_HIT = "cache-hit"


class RequestType(Enum):
    USER_REQUESTED = "user-requested"
    AUTO_SELECTED = "auto-selected"


# Why a package needs to be (re-)built.
class BuildReason(Enum):
    NOT_INSTALLED = "not-installed"
    PARTIALLY_INSTALLED = "partially-installed"
    VERSION_CHANGED = "version-changed"
    FEATURES_CHANGED = "features-changed"


class RemoveReason(Enum):
    UPGRADE = "upgrade"
    FEATURE_CHANGE = "feature-change"
    PARTIAL_INSTALL = "partial-install"


_remove_reasons = {
    BuildReason.PARTIALLY_INSTALLED: RemoveReason.PARTIAL_INSTALL,
    BuildReason.VERSION_CHANGED: RemoveReason.UPGRADE,
    BuildReason.FEATURES_CHANGED: RemoveReason.FEATURE_CHANGE,
}


class InstallAction:
    __slots__ = [
        "spec",
        "dependencies",
        "version",
        "features",
        "content_identity",
        "provenance",
        "request_type",
        "build_reason",
        "installed_version",
        "recipe",
    ]

    def __init__(
        self,
        node,
        content_identity,
        *,
        provenance,
        request_type,
        build_reason=None,
        installed_version=None,
    ):
        self.spec = node.spec
        self.dependencies = node.dependencies
        self.version = node.version
        self.features = node.features
        self.recipe = node.recipe
        self.content_identity = content_identity
        self.provenance = provenance
        self.request_type = request_type
        self.build_reason = build_reason
        self.installed_version = installed_version

    def to_yml(self):
        yml = {
            "spec": str(self.spec),
            "version": str(self.version),
            "features": sorted(self.features),
            "dependencies": [str(s) for s in self.dependencies],
            "content_identity": self.content_identity,
            "provenance": self.provenance.value,
            "request_type": self.request_type.value,
        }
        if self.build_reason is not None:
            yml["build_reason"] = self.build_reason.value
        if self.installed_version is not None:
            yml["installed_version"] = str(self.installed_version)
        return yml


class RemoveAction:
    __slots__ = ["spec", "reason"]

    def __init__(self, spec, reason):
        self.spec = spec
        self.reason = reason

    def to_yml(self):
        return {"spec": str(self.spec), "reason": self.reason.value}


class ActionPlan:
    def __init__(
        self,
        *,
        mode=PlanMode.INSTALL,
        remove_actions=(),
        install_actions=(),
        already_installed=(),
        warnings=(),
        excluded=None,
    ):
        self.mode = mode
        self.remove_actions = list(remove_actions)
        self.install_actions = list(install_actions)
        self.already_installed = list(already_installed)
        self.warnings = list(warnings)
        self.excluded = dict(excluded or {})

    def empty(self):
        return not self.remove_actions and not self.install_actions

    def to_yml(self):
        return {
            "mode": self.mode.value,
            "remove": [a.to_yml() for a in self.remove_actions],
            "install": [a.to_yml() for a in self.install_actions],
            "already_installed": [a.to_yml() for a in self.already_installed],
            "excluded": {str(s): self.excluded[s] for s in sorted(self.excluded)},
            "warnings": list(self.warnings),
        }

    def serialize(self):
        return yaml.safe_dump(self.to_yml(), sort_keys=False)


def classify_node(node, status_db):
    """Returns the BuildReason for a resolved node or None if it is up to date."""
    record = status_db.find(node.spec)
    if record is None:
        return BuildReason.NOT_INSTALLED
    if record.state != InstallState.INSTALLED:
        return BuildReason.PARTIALLY_INSTALLED
    if node.recipe is None:
        # Nothing to compare against; the installed copy is all we have.
        return None
    if compare_versions(record.version, node.version) != Comparison.EQUAL:
        return BuildReason.VERSION_CHANGED
    if not node.requested_features <= record.features:
        return BuildReason.FEATURES_CHANGED
    return None


def _record_identity(record):
    if record.abi is not None:
        return record.abi
    h = hashlib.sha256()
    h.update("installed {}\n".format(record.spec).encode("utf-8"))
    h.update("version {}\n".format(record.version).encode("utf-8"))
    h.update("features {}\n".format(",".join(sorted(record.features))).encode("utf-8"))
    return h.hexdigest()


def compute_content_identities(graph, status_db):
    """Computes the content identity of every node of a resolved graph.

    The identity of a package is a digest over its recipe fingerprint, its
    triplet, its features and the identities of all of its dependencies.
    Hence, any change of a dependency changes the identities of all of its
    transitive dependents.
    """
    identities = dict()
    for spec in graph.order:
        node = graph.nodes[spec]
        if node.recipe is None:
            identities[spec] = _record_identity(status_db.find_installed(spec))
            continue

        h = hashlib.sha256()
        h.update("recipe {}\n".format(node.recipe.fingerprint).encode("utf-8"))
        h.update("triplet {}\n".format(spec.triplet).encode("utf-8"))
        h.update("features {}\n".format(",".join(sorted(node.features))).encode("utf-8"))
        for dep_spec in node.dependencies:
            if dep_spec in identities:
                dep_identity = identities[dep_spec]
            else:
                # Excluded ports can only be depended upon if they are installed.
                dep_identity = _record_identity(status_db.find_installed(dep_spec))
            h.update("dependency {} {}\n".format(dep_spec, dep_identity).encode("utf-8"))
        identities[spec] = h.hexdigest()
    return identities


def build_action_plan(graph, status_db, *, mode=PlanMode.INSTALL):
    identities = compute_content_identities(graph, status_db)
    requested = set(graph.requested)

    remove_actions = []
    install_actions = []
    already_installed = []

    # graph.order puts dependencies first; the install sequence inherits that order.
    for spec in graph.order:
        node = graph.nodes[spec]
        if spec in requested:
            request_type = RequestType.USER_REQUESTED
        else:
            request_type = RequestType.AUTO_SELECTED

        reason = classify_node(node, status_db)
        record = status_db.find(spec)
        if reason is None:
            already_installed.append(
                InstallAction(
                    node,
                    identities[spec],
                    provenance=Provenance.ALREADY_INSTALLED,
                    request_type=request_type,
                )
            )
            continue

        if record is not None:
            remove_actions.append(RemoveAction(spec, _remove_reasons[reason]))
        install_actions.append(
            InstallAction(
                node,
                identities[spec],
                provenance=Provenance.BUILD_REQUIRED,
                request_type=request_type,
                build_reason=reason,
                installed_version=record.version if record is not None else None,
            )
        )

    # Remove dependents before their dependencies.
    remove_actions.reverse()
    already_installed.sort(key=lambda a: a.spec)

    return ActionPlan(
        mode=mode,
        remove_actions=remove_actions,
        install_actions=install_actions,
        already_installed=already_installed,
        warnings=graph.warnings,
        excluded=graph.excluded,
    )


def create_install_plan(
    requests,
    provider,
    status_db,
    *,
    host_triplet,
    unsupported_port_action=UnsupportedPortAction.ERROR,
    extra_tags=None,
    mode=PlanMode.INSTALL,
):
    graph = resolve_dependencies(
        requests,
        provider,
        status_db,
        host_triplet=host_triplet,
        unsupported_port_action=unsupported_port_action,
        extra_tags=extra_tags,
    )
    return build_action_plan(graph, status_db, mode=mode)


def _format_action(action):
    text = str(action.spec)
    if action.features:
        text = "{}[{}]:{}".format(
            action.spec.name, ",".join(sorted(action.features)), action.spec.triplet
        )
    text += " -> {}".format(action.version)
    if action.request_type == RequestType.AUTO_SELECTED:
        text = "* " + text
    else:
        text = "  " + text
    return text


def print_plan(plan):
    if plan.already_installed:
        _util.log_info("The following packages are already installed:")
        for action in plan.already_installed:
            eprint("    {}".format(_format_action(action)))

    if plan.remove_actions:
        _util.log_info("The following packages will be removed:")
        for action in plan.remove_actions:
            eprint("    {:14} {}".format(action.reason.value, action.spec))

    if plan.install_actions:
        _util.log_info("The following packages will be built and installed:")
        for action in plan.install_actions:
            eprint("    {}".format(_format_action(action)), end="")
            if action.build_reason == BuildReason.VERSION_CHANGED:
                eprint(
                    " ({}{}updatable from {}{})".format(
                        colorama.Style.BRIGHT,
                        colorama.Fore.BLUE,
                        action.installed_version,
                        colorama.Style.RESET_ALL,
                    ),
                    end="",
                )
            elif action.build_reason == BuildReason.FEATURES_CHANGED:
                eprint(
                    " ({}{}features changed{})".format(
                        colorama.Style.BRIGHT, colorama.Fore.BLUE, colorama.Style.RESET_ALL
                    ),
                    end="",
                )
            elif action.build_reason == BuildReason.PARTIALLY_INSTALLED:
                eprint(
                    " ({}partially installed{})".format(
                        colorama.Fore.MAGENTA, colorama.Style.RESET_ALL
                    ),
                    end="",
                )
            eprint()
        if any(a.request_type == RequestType.AUTO_SELECTED for a in plan.install_actions):
            eprint("Additional packages (*) will be modified to complete this operation.")

    if plan.empty():
        _util.log_info("Nothing to do")

    for warning in plan.warnings:
        _util.log_warn(warning)
