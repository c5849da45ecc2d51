"""Tests for action plan construction."""
from conftest import HOST, installed, provider, recipe, spec, status

from portplan.plan import (
    BuildReason,
    PlanMode,
    Provenance,
    RemoveReason,
    RequestType,
    build_action_plan,
    classify_node,
    compute_content_identities,
    create_install_plan,
)
from portplan.ports import Dependency, Feature
from portplan.resolver import resolve_dependencies
from portplan.specs import FullPackageSpec
from portplan.statusdb import InstallState


def make_plan(names, ports, db=None, **kwargs):
    requests = [FullPackageSpec(spec(n)) for n in names]
    return create_install_plan(requests, ports, db or status(), host_triplet=HOST, **kwargs)


def chain_ports(zlib_version="1.2.13"):
    return provider(
        recipe("app", dependencies=["curl"]),
        recipe("curl", dependencies=["zlib"]),
        recipe("zlib", zlib_version),
        recipe("other"),
    )


def test_fresh_install_builds_everything_in_order():
    plan = make_plan(["app"], chain_ports())
    assert [str(a.spec) for a in plan.install_actions] == [
        "zlib:x64-linux",
        "curl:x64-linux",
        "app:x64-linux",
    ]
    assert not plan.remove_actions
    assert all(a.build_reason == BuildReason.NOT_INSTALLED for a in plan.install_actions)
    assert all(a.provenance == Provenance.BUILD_REQUIRED for a in plan.install_actions)
    request_types = [a.request_type for a in plan.install_actions]
    assert request_types == [
        RequestType.AUTO_SELECTED,
        RequestType.AUTO_SELECTED,
        RequestType.USER_REQUESTED,
    ]


def test_dependencies_precede_dependents():
    plan = make_plan(["app", "other"], chain_ports())
    position = {a.spec: i for i, a in enumerate(plan.install_actions)}
    for action in plan.install_actions:
        for dep in action.dependencies:
            assert position[dep] < position[action.spec]


def test_up_to_date_packages_are_not_actions():
    db = status(
        installed("zlib", "1.2.13"),
        installed("curl", deps=["zlib:x64-linux"]),
    )
    plan = make_plan(["app"], chain_ports(), db)
    assert [a.spec for a in plan.install_actions] == [spec("app")]
    assert [a.spec for a in plan.already_installed] == [spec("curl"), spec("zlib")]
    assert all(a.provenance == Provenance.ALREADY_INSTALLED for a in plan.already_installed)


def test_nothing_to_do():
    db = status(installed("other"))
    plan = make_plan(["other"], chain_ports(), db)
    assert plan.empty()
    assert len(plan.already_installed) == 1


def test_version_change_removes_old_copy():
    db = status(installed("zlib", "1.2.12"), installed("curl", deps=["zlib:x64-linux"]))
    plan = make_plan(["curl"], chain_ports(), db)
    assert [(a.spec, a.reason) for a in plan.remove_actions] == [
        (spec("zlib"), RemoveReason.UPGRADE)
    ]
    (action,) = plan.install_actions
    assert action.spec == spec("zlib")
    assert action.build_reason == BuildReason.VERSION_CHANGED
    assert str(action.installed_version) == "1.2.12#0"


def test_removes_run_dependents_first():
    db = status(
        installed("zlib", "1.2.12"),
        installed("curl", "0.9", deps=["zlib:x64-linux"]),
    )
    plan = make_plan(["curl"], chain_ports(), db)
    assert [a.spec for a in plan.remove_actions] == [spec("curl"), spec("zlib")]
    assert [a.spec for a in plan.install_actions] == [spec("zlib"), spec("curl")]


def test_partial_install_is_rebuilt():
    db = status(installed("other", state=InstallState.HALF_INSTALLED))
    plan = make_plan(["other"], chain_ports(), db)
    assert plan.remove_actions[0].reason == RemoveReason.PARTIAL_INSTALL
    assert plan.install_actions[0].build_reason == BuildReason.PARTIALLY_INSTALLED


def test_missing_feature_triggers_rebuild():
    ports = provider(
        recipe("curl", features=[Feature("http2", dependencies=(Dependency("nghttp2"),))]),
        recipe("nghttp2"),
    )
    db = status(installed("curl"))
    plan = create_install_plan(
        [FullPackageSpec(spec("curl"), ("http2",))], ports, db, host_triplet=HOST
    )
    assert [a.spec for a in plan.install_actions] == [spec("nghttp2"), spec("curl")]
    assert plan.install_actions[1].build_reason == BuildReason.FEATURES_CHANGED
    assert plan.install_actions[1].features == {"http2"}
    assert plan.remove_actions[0].reason == RemoveReason.FEATURE_CHANGE


def test_classify_recipe_less_package():
    db = status(installed("legacy"))
    ports = provider(recipe("app", dependencies=["legacy"]))
    graph = resolve_dependencies([FullPackageSpec(spec("app"))], ports, db, host_triplet=HOST)
    assert classify_node(graph[spec("legacy")], db) is None
    assert classify_node(graph[spec("app")], db) == BuildReason.NOT_INSTALLED


def identities(ports):
    requests = [FullPackageSpec(spec("app")), FullPackageSpec(spec("other"))]
    graph = resolve_dependencies(requests, ports, status(), host_triplet=HOST)
    return compute_content_identities(graph, status())


def test_content_identity_propagates_to_dependents_only():
    before = identities(chain_ports("1.2.13"))
    after = identities(chain_ports("1.3"))
    for name in ["zlib", "curl", "app"]:
        assert before[spec(name)] != after[spec(name)]
    assert before[spec("other")] == after[spec("other")]


def test_content_identity_depends_on_triplet_and_features():
    ports = provider(recipe("zlib", features=[Feature("asm")]))
    ids = set()
    for full in [
        FullPackageSpec(spec("zlib")),
        FullPackageSpec(spec("zlib", "x64-windows")),
        FullPackageSpec(spec("zlib"), ("asm",)),
    ]:
        graph = resolve_dependencies([full], ports, status(), host_triplet=HOST)
        ids.add(compute_content_identities(graph, status())[full.spec])
    assert len(ids) == 3


def test_plan_is_deterministic():
    db = status(installed("zlib", "1.2.12"))
    first = make_plan(["app", "other"], chain_ports(), db).serialize()
    second = make_plan(["other", "app"], chain_ports(), db).serialize()
    assert first == second


def test_upgrade_mode_is_recorded():
    graph = resolve_dependencies(
        [FullPackageSpec(spec("other"))], chain_ports(), status(), host_triplet=HOST
    )
    plan = build_action_plan(graph, status(), mode=PlanMode.UPGRADE)
    assert plan.to_yml()["mode"] == "upgrade"
