# SPDX-License-Identifier: MIT

import argparse
import sys

import colorama

import portplan.base
import portplan.binarycache
import portplan.cli_utils
import portplan.exceptions
import portplan.install
import portplan.plan
import portplan.ports
import portplan.resolver
import portplan.specs
import portplan.statusdb
import portplan.upgrade
import portplan.util

# ---------------------------------------------------------------------------------------
# Command line parsing.
# ---------------------------------------------------------------------------------------

main_parser = argparse.ArgumentParser()
main_parser.add_argument("-v", dest="verbose", action="store_true", help="verbose")
main_subparsers = main_parser.add_subparsers(dest="command")


class Context:
    def __init__(self, cfg):
        self.cfg = cfg
        self.provider = portplan.ports.DirectoryPortProvider(cfg.ports_dir)
        self.status_file = portplan.statusdb.StatusFile(cfg.status_path)
        self.status_db = self.status_file.load()

    def make_binary_cache(self):
        if not self.cfg.binary_cache_enabled:
            return portplan.binarycache.NullBinaryCache()
        return portplan.binarycache.FilesystemBinaryCache(
            self.cfg.binary_cache_dir, read_only=self.cfg.binary_cache_read_only
        )


def determine_keep_going(args):
    if args.keep_going and args.no_keep_going:
        main_parser.error("--keep-going and --no-keep-going cannot be specified together")
    if args.no_keep_going:
        return False
    return True


def determine_unsupported_port_action(args):
    if args.allow_unsupported:
        return portplan.resolver.UnsupportedPortAction.WARN
    return portplan.resolver.UnsupportedPortAction.ERROR


def execute(ctx, plan, args):
    progress_file = None
    if args.progress_file is not None:
        try:
            progress_file = portplan.cli_utils.open_file_from_cli(args.progress_file, "wt")
        except ValueError as e:
            main_parser.error(str(e))
    portplan.install.execute_plan(
        plan,
        builder=portplan.install.ScriptBuilder(ctx.cfg),
        binary_cache=ctx.make_binary_cache(),
        status_file=ctx.status_file,
        keep_going=determine_keep_going(args),
        progress_file=progress_file,
    )


handle_plan_args = argparse.ArgumentParser(add_help=False)
handle_plan_args.add_argument(
    "--keep-going",
    action="store_true",
    help="continue installing packages on failure (default)",
)
handle_plan_args.add_argument(
    "--no-keep-going",
    action="store_true",
    help="stop installing packages on failure",
)
handle_plan_args.add_argument(
    "--allow-unsupported",
    action="store_true",
    help="instead of erroring on an unsupported port, continue with a warning",
)
handle_plan_args.add_argument(
    "--progress-file",
    type=str,
    help="file that receives machine-ready progress notifications",
)


def do_install(args):
    ctx = Context(portplan.base.config_for_dir())
    requests = [
        portplan.specs.parse_package_spec(text, ctx.cfg.default_triplet) for text in args.packages
    ]
    plan = portplan.plan.create_install_plan(
        requests,
        ctx.provider,
        ctx.status_db,
        host_triplet=ctx.cfg.host_triplet,
        unsupported_port_action=determine_unsupported_port_action(args),
        extra_tags=ctx.cfg.triplet_tags,
    )
    portplan.plan.print_plan(plan)

    if args.dry_run or plan.empty():
        return
    execute(ctx, plan, args)


do_install.parser = main_subparsers.add_parser("install", parents=[handle_plan_args])
do_install.parser.add_argument(
    "-n", "--dry-run", action="store_true", help="compute a plan but do not execute it"
)
do_install.parser.add_argument("packages", nargs="+", type=str)
do_install.parser.set_defaults(_impl=do_install)


def print_spec_group(header, specs, color):
    if not specs:
        return
    portplan.util.eprint("{}{}{}".format(color, header, colorama.Style.RESET_ALL))
    for spec in specs:
        portplan.util.eprint("    {}".format(spec))


def do_upgrade(args):
    ctx = Context(portplan.base.config_for_dir())
    specs = [
        portplan.specs.parse_package_spec(text, ctx.cfg.default_triplet).spec
        for text in args.packages
    ]

    if specs:
        request = portplan.upgrade.partition_upgrade_request(specs, ctx.provider, ctx.status_db)
        print_spec_group(
            "The following packages are up-to-date:", request.up_to_date, colorama.Fore.GREEN
        )
        print_spec_group(
            "The following packages are not installed:", request.not_installed, colorama.Fore.RED
        )
        print_spec_group(
            "The following packages do not have a valid port recipe:",
            request.no_recipe,
            colorama.Fore.RED,
        )

    result = portplan.upgrade.create_upgrade_plan(
        specs,
        ctx.provider,
        ctx.status_db,
        host_triplet=ctx.cfg.host_triplet,
        unsupported_port_action=determine_unsupported_port_action(args),
        extra_tags=ctx.cfg.triplet_tags,
    )

    for package in result.unavailable:
        portplan.util.log_warn(
            "Skipping {}: {}".format(
                package.spec,
                "no port recipe" if package.reason == "no-recipe" else "unsupported triplet",
            )
        )

    if result.nothing_to_do:
        for warning in result.plan.warnings:
            portplan.util.log_warn(warning)
        if not specs:
            portplan.util.log_info(
                "All installed packages are up-to-date with the local port recipes."
            )
        return

    portplan.plan.print_plan(result.plan)

    if not args.no_dry_run:
        portplan.util.log_warn(
            "If you are sure you want to rebuild the above packages,"
            " run this command with the --no-dry-run option."
        )
        sys.exit(1)

    execute(ctx, result.plan, args)


do_upgrade.parser = main_subparsers.add_parser("upgrade", parents=[handle_plan_args])
do_upgrade.parser.add_argument("--no-dry-run", action="store_true", help="actually upgrade")
do_upgrade.parser.add_argument("packages", nargs="*", type=str)
do_upgrade.parser.set_defaults(_impl=do_upgrade)


def do_outdated(args):
    ctx = Context(portplan.base.config_for_dir())
    outdated, unavailable = portplan.upgrade.find_outdated_packages(
        ctx.provider,
        ctx.status_db,
        host_triplet=ctx.cfg.host_triplet,
        extra_tags=ctx.cfg.triplet_tags,
    )
    for package in outdated:
        print(
            "{:30} {} -> {}".format(
                str(package.spec), package.installed_version, package.declared_version
            )
        )
    for package in unavailable:
        print("{:30} ({})".format(str(package.spec), package.reason))


do_outdated.parser = main_subparsers.add_parser("outdated")
do_outdated.parser.set_defaults(_impl=do_outdated)


def do_list(args):
    ctx = Context(portplan.base.config_for_dir())
    for record in ctx.status_db.all():
        line = "{:30} {}".format(str(record.spec), record.version)
        if record.features:
            line += " [{}]".format(",".join(sorted(record.features)))
        if record.state != portplan.statusdb.InstallState.INSTALLED:
            line += " ({})".format(record.state.value)
        print(line)


do_list.parser = main_subparsers.add_parser("list")
do_list.parser.set_defaults(_impl=do_list)


def main():
    args = main_parser.parse_args()

    colorama.init()

    if args.verbose:
        portplan.base.verbosity = True

    if not portplan.base.native_yaml_available and args.verbose:
        portplan.util.log_warn(
            "Using pure Python YAML parser; install libyaml for improved performance"
        )

    if not hasattr(args, "_impl"):
        main_parser.print_help()
        sys.exit(1)

    try:
        args._impl(args)
    except (
        portplan.install.ExecutionFailureError,
        portplan.install.PlanFailureError,
        portplan.exceptions.GenericError,
    ) as e:
        portplan.util.log_err(e)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(1)
