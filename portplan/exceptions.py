# SPDX-License-Identifier: MIT

# Errors raised by the planning engine. Execution-time failures live in
# portplan.install since they need to know about actions.


class GenericError(Exception):
    pass


class RecipeError(GenericError):
    pass


class UnsupportedPortError(GenericError):
    def __init__(self, spec, triplet, required_by=None):
        if required_by is None:
            msg = "Port {} is not supported on triplet {}".format(spec.name, triplet)
        else:
            msg = "Port {} is not supported on triplet {} but is required by {}".format(
                spec.name, triplet, required_by
            )
        super().__init__(msg)
        self.spec = spec
        self.triplet = triplet
        self.required_by = required_by


class DependencyCycleError(GenericError):
    def __init__(self, cycle):
        super().__init__(
            "Packages have circular dependencies: {}".format(" -> ".join(str(s) for s in cycle))
        )
        self.cycle = list(cycle)


class UnresolvablePackageError(GenericError):
    def __init__(self, spec, required_by=None):
        if required_by is None:
            msg = "Unknown package {}".format(spec)
        else:
            msg = "Unknown package {} (required by {})".format(spec, required_by)
        super().__init__(msg)
        self.spec = spec
        self.required_by = required_by


class InvalidRequestError(GenericError):
    def __init__(self, not_installed=(), no_recipe=()):
        parts = []
        if not_installed:
            parts.append(
                "the following packages are not installed: {}".format(
                    ", ".join(str(s) for s in not_installed)
                )
            )
        if no_recipe:
            parts.append(
                "the following packages do not have a valid port recipe: {}".format(
                    ", ".join(str(s) for s in no_recipe)
                )
            )
        super().__init__("Invalid request; " + "; ".join(parts))
        self.not_installed = list(not_installed)
        self.no_recipe = list(no_recipe)
