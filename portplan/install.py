# SPDX-License-Identifier: MIT

import errno
import os
import shutil
import subprocess
from enum import Enum

import yaml

import portplan.base as _base
import portplan.util as _util
from portplan.exceptions import GenericError
from portplan.plan import Provenance
from portplan.statusdb import InstalledRecord, InstallState
from portplan.util import eprint


class ExecutionStatus(Enum):
    SUCCESS = 1
    STEP_FAILED = 2
    PREREQS_FAILED = 3


class ExecutionFailureError(Exception):
    def __init__(self, step, spec):
        super().__init__("Action {} of {} failed".format(step, spec))
        self.step = step
        self.spec = spec


class PlanFailureError(Exception):
    def __init__(self):
        super().__init__("Plan failed")


def try_rmtree(path):
    try:
        shutil.rmtree(path)
    except OSError as e:
        if e.errno != errno.ENOENT:
            raise


def get_concurrency():
    try:
        return len(os.sched_getaffinity(0))
    except AttributeError:
        # MacOS does not have CPU affinity.
        return os.cpu_count()


class PortBuilder:
    def staging_dir(self, spec):
        raise NotImplementedError()

    def build(self, action, staging_dir):
        raise NotImplementedError()

    def install(self, spec, staging_dir):
        raise NotImplementedError()

    def remove(self, spec):
        raise NotImplementedError()


# Runs the build steps of a recipe. Steps see the following @VARS@ and
# PORTPLAN_* environment variables: PORT, TRIPLET, VERSION, FEATURES,
# PACKAGE_DIR (where the build must install its files), BUILDTREE_DIR, ROOT,
# CONTENT_IDENTITY and PARALLELISM.
class ScriptBuilder(PortBuilder):
    def __init__(self, cfg):
        self._cfg = cfg

    def staging_dir(self, spec):
        return os.path.join(self._cfg.buildtree_dir(spec), "staging")

    def build(self, action, staging_dir):
        spec = action.spec
        buildtree = self._cfg.buildtree_dir(spec)
        try_rmtree(staging_dir)
        _util.ensure_dir(staging_dir)

        variables = {
            "PORT": spec.name,
            "TRIPLET": spec.triplet,
            "VERSION": action.version.primary,
            "FEATURES": ",".join(sorted(action.features)),
            "PACKAGE_DIR": staging_dir,
            "BUILDTREE_DIR": buildtree,
            "ROOT": self._cfg.root,
            "CONTENT_IDENTITY": action.content_identity,
            "PARALLELISM": str(get_concurrency()),
        }

        environ = os.environ.copy()
        for key, value in variables.items():
            environ["PORTPLAN_" + key] = value

        for step in action.recipe.build_steps:
            self._run_step(step, variables, environ, buildtree)

    def _run_step(self, step, variables, environ, buildtree):
        step_environ = dict(environ)
        step_environ.update(step.environment(variables))
        args = step.command(variables)

        workdir = buildtree
        if step.workdir is not None:
            workdir = _base.substitute_vars(step.workdir, variables)
        _util.ensure_dir(workdir)

        if _base.verbosity:
            _util.log_info("Running {}".format(" ".join(args)))

        output = None  # Default: Do not redirect output.
        if step.quiet and not _base.verbosity:
            output = subprocess.DEVNULL

        subprocess.check_call(args, env=step_environ, cwd=workdir, stdout=output, stderr=output)

    def install(self, spec, staging_dir):
        package_dir = self._cfg.package_dir(spec)
        try_rmtree(package_dir)
        _util.ensure_dir(os.path.dirname(package_dir))
        shutil.move(staging_dir, package_dir)

    def remove(self, spec):
        try_rmtree(self._cfg.package_dir(spec))


class InstallSummary:
    def __init__(self):
        self.results = []  # Stores (step, spec, ExecutionStatus) triples.

    def add(self, step, spec, status):
        self.results.append((step, spec, status))

    @property
    def failed(self):
        return [r for r in self.results if r[2] != ExecutionStatus.SUCCESS]

    def print(self):
        _util.log_info("The following steps failed:")
        for step, spec, status in self.failed:
            eprint("    {:14} {}".format(step, spec), end="")
            if status == ExecutionStatus.PREREQS_FAILED:
                eprint(" (prerequisites failed)", end="")
            eprint()


def execute_plan(
    plan,
    *,
    builder,
    binary_cache,
    status_file,
    keep_going=False,
    progress_file=None,
):
    """Runs the actions of an ActionPlan in order.

    The status database is only updated once an action is complete. Without
    keep_going, the first failure raises ExecutionFailureError; otherwise the
    remaining independent actions still run and PlanFailureError is raised at
    the end.
    """
    summary = InstallSummary()
    n_all = len(plan.remove_actions) + len(plan.install_actions)
    failed_specs = set()
    n = 0

    def emit_progress(step, action, status):
        if progress_file is None:
            return
        yml = {
            "n_this": n + 1,
            "n_all": n_all,
            "status": status,
            "action": step,
            "subject": str(action.spec),
        }
        if step == "install":
            yml["content_identity"] = action.content_identity
            yml["provenance"] = action.provenance.value
        progress_file.write(yaml.safe_dump(yml, explicit_end=True))
        progress_file.flush()

    def handle_failure(step, action):
        summary.add(step, action.spec, ExecutionStatus.STEP_FAILED)
        failed_specs.add(action.spec)
        emit_progress(step, action, "failure")
        if not keep_going:
            raise ExecutionFailureError(step, action.spec)

    for action in plan.remove_actions:
        _util.log_info("remove {} [{}/{}]".format(action.spec, n + 1, n_all))
        try:
            builder.remove(action.spec)
            status_file.remove(action.spec)
        except (OSError, GenericError):
            handle_failure("remove", action)
        else:
            summary.add("remove", action.spec, ExecutionStatus.SUCCESS)
            emit_progress("remove", action, "success")
        n += 1

    for action in plan.install_actions:
        spec = action.spec

        # Check if any prerequisites failed; this can generally only happen with keep_going.
        # A failed remove of the same spec also blocks its reinstall.
        if spec in failed_specs or any(dep in failed_specs for dep in action.dependencies):
            _util.log_info(
                "Skipping install of {} due to failed prerequisites [{}/{}]".format(
                    spec, n + 1, n_all
                )
            )
            summary.add("install", spec, ExecutionStatus.PREREQS_FAILED)
            failed_specs.add(spec)
            emit_progress("install", action, "prereqs-failed")
            n += 1
            continue

        _util.log_info("install {} [{}/{}]".format(spec, n + 1, n_all))
        try:
            staging_dir = builder.staging_dir(spec)
            handle = binary_cache.lookup(action.content_identity)
            if handle is not None:
                _util.log_info("Restoring {} from the binary cache".format(spec))
                try_rmtree(staging_dir)
                try:
                    binary_cache.restore(handle, staging_dir)
                except GenericError as e:
                    _util.log_warn("{}; building {} instead".format(e, spec))
                    try_rmtree(staging_dir)
                    handle = None
                else:
                    action.provenance = Provenance.CACHE_HIT
            if handle is None:
                builder.build(action, staging_dir)
                binary_cache.store(action.content_identity, staging_dir)

            record = InstalledRecord(
                spec,
                action.version,
                features=frozenset(action.features),
                state=InstallState.HALF_INSTALLED,
                dependencies=tuple(action.dependencies),
                abi=action.content_identity,
            )
            status_file.update(record)
            builder.install(spec, staging_dir)
            status_file.update(record._replace(state=InstallState.INSTALLED))
        except (subprocess.CalledProcessError, OSError, GenericError):
            handle_failure("install", action)
        else:
            summary.add("install", spec, ExecutionStatus.SUCCESS)
            emit_progress("install", action, "success")
        n += 1

    if summary.failed:
        summary.print()
        raise PlanFailureError()
    return summary
