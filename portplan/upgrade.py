# SPDX-License-Identifier: MIT

import collections

from portplan.exceptions import InvalidRequestError
from portplan.plan import ActionPlan, PlanMode, create_install_plan
from portplan.resolver import UnsupportedPortAction
from portplan.specs import FullPackageSpec
from portplan.statusdb import InstallState
from portplan.versions import Comparison, compare_versions

OutdatedPackage = collections.namedtuple(
    "OutdatedPackage", ["spec", "installed_version", "declared_version"]
)

# reason is either "no-recipe" or "unsupported".
UnavailablePackage = collections.namedtuple("UnavailablePackage", ["spec", "reason"])

UpgradeRequest = collections.namedtuple(
    "UpgradeRequest", ["not_installed", "no_recipe", "up_to_date", "to_upgrade"]
)

# request is None if no packages were named explicitly.
UpgradeResult = collections.namedtuple(
    "UpgradeResult", ["plan", "request", "outdated", "unavailable", "nothing_to_do"]
)


def find_outdated_packages(provider, status_db, *, host_triplet=None, extra_tags=None):
    """Compares every installed package against its current recipe.

    Returns a pair (outdated, unavailable). Packages without a recipe or whose
    recipe does not support the installed triplet end up in unavailable and are
    never upgraded.
    """
    outdated = []
    unavailable = []
    for record in status_db.all():
        if record.state != InstallState.INSTALLED:
            continue
        recipe = provider.get_recipe(record.spec.name)
        if recipe is None:
            unavailable.append(UnavailablePackage(record.spec, "no-recipe"))
            continue
        if not recipe.is_supported(
            record.spec.triplet, host_triplet=host_triplet, extra_tags=extra_tags
        ):
            unavailable.append(UnavailablePackage(record.spec, "unsupported"))
            continue
        if compare_versions(record.version, recipe.version) != Comparison.EQUAL:
            outdated.append(OutdatedPackage(record.spec, record.version, recipe.version))
    return outdated, unavailable


def partition_upgrade_request(specs, provider, status_db):
    not_installed = []
    no_recipe = []
    up_to_date = []
    to_upgrade = []

    for spec in specs:
        if isinstance(spec, FullPackageSpec):
            spec = spec.spec
        skip_version_check = False

        record = status_db.find_installed(spec)
        if record is None:
            not_installed.append(spec)
            skip_version_check = True

        recipe = provider.get_recipe(spec.name)
        if recipe is None:
            no_recipe.append(spec)
            skip_version_check = True

        if skip_version_check:
            continue

        if compare_versions(record.version, recipe.version) == Comparison.EQUAL:
            up_to_date.append(spec)
        else:
            to_upgrade.append(spec)

    return UpgradeRequest(
        sorted(set(not_installed)),
        sorted(set(no_recipe)),
        sorted(set(up_to_date)),
        sorted(set(to_upgrade)),
    )


def create_upgrade_plan(
    specs,
    provider,
    status_db,
    *,
    host_triplet,
    unsupported_port_action=UnsupportedPortAction.ERROR,
    extra_tags=None,
):
    """Plans an upgrade of the given packages or, if specs is empty, of all
    outdated packages.

    Raises InvalidRequestError if any named package is not installed or has no
    recipe. An empty upgrade is reported through UpgradeResult.nothing_to_do.
    """
    outdated = []
    unavailable = []
    request = None

    if not specs:
        outdated, unavailable = find_outdated_packages(
            provider, status_db, host_triplet=host_triplet, extra_tags=extra_tags
        )
        to_upgrade = [package.spec for package in outdated]
    else:
        request = partition_upgrade_request(specs, provider, status_db)
        if request.not_installed or request.no_recipe:
            raise InvalidRequestError(request.not_installed, request.no_recipe)
        to_upgrade = request.to_upgrade

    if not to_upgrade:
        return UpgradeResult(
            ActionPlan(mode=PlanMode.UPGRADE), request, outdated, unavailable, True
        )

    # Upgrades keep the installed features; defaults are not added.
    requests = [FullPackageSpec(spec, default_features=False) for spec in to_upgrade]
    plan = create_install_plan(
        requests,
        provider,
        status_db,
        host_triplet=host_triplet,
        unsupported_port_action=unsupported_port_action,
        extra_tags=extra_tags,
        mode=PlanMode.UPGRADE,
    )
    return UpgradeResult(plan, request, outdated, unavailable, plan.empty())
