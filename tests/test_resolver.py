"""Tests for dependency resolution and ordering."""
import pytest
from conftest import HOST, installed, provider, recipe, spec, status

from portplan.exceptions import (
    DependencyCycleError,
    GenericError,
    UnresolvablePackageError,
    UnsupportedPortError,
)
from portplan.ports import Dependency, Feature
from portplan.resolver import UnsupportedPortAction, resolve_dependencies
from portplan.specs import FullPackageSpec, make_full_spec


def resolve(requests, ports, db=None, **kwargs):
    kwargs.setdefault("host_triplet", HOST)
    return resolve_dependencies(requests, ports, db or status(), **kwargs)


def test_host_dependency_uses_host_triplet():
    """toolA needs toolB at build time; toolB is built for the host."""
    ports = provider(
        recipe("tool-a", dependencies=[Dependency("tool-b", host=True)]),
        recipe("tool-b"),
    )
    graph = resolve(
        [FullPackageSpec(spec("tool-a", "arm64-linux"))], ports, host_triplet="x64-linux"
    )
    assert set(graph.nodes) == {spec("tool-a", "arm64-linux"), spec("tool-b", "x64-linux")}
    assert graph.order == [spec("tool-b", "x64-linux"), spec("tool-a", "arm64-linux")]
    assert graph.requested == [spec("tool-a", "arm64-linux")]


def test_dependencies_come_first():
    ports = provider(
        recipe("app", dependencies=["curl", "zlib"]),
        recipe("curl", dependencies=["zlib", "openssl"]),
        recipe("openssl", dependencies=["zlib"]),
        recipe("zlib"),
    )
    graph = resolve([FullPackageSpec(spec("app"))], ports)
    position = {s: i for i, s in enumerate(graph.order)}
    for node in graph.nodes.values():
        for dep in node.dependencies:
            assert position[dep] < position[node.spec]
    assert graph.order == [spec("zlib"), spec("openssl"), spec("curl"), spec("app")]


def test_order_is_deterministic():
    ports = provider(recipe("a", dependencies=["c", "b"]), recipe("b"), recipe("c"))
    first = resolve([FullPackageSpec(spec("a"))], ports).order
    second = resolve([FullPackageSpec(spec("a"))], ports).order
    assert first == second == [spec("b"), spec("c"), spec("a")]


def test_cycle_is_reported():
    ports = provider(recipe("a", dependencies=["b"]), recipe("b", dependencies=["a"]))
    with pytest.raises(DependencyCycleError) as excinfo:
        resolve([FullPackageSpec(spec("a"))], ports)
    assert excinfo.value.cycle == [spec("a"), spec("b"), spec("a")]


def test_unknown_package():
    ports = provider(recipe("a", dependencies=["missing"]))
    with pytest.raises(UnresolvablePackageError):
        resolve([FullPackageSpec(spec("a"))], ports)


def test_unsupported_port_is_an_error_by_default():
    ports = provider(recipe("winonly", supports="windows"))
    with pytest.raises(UnsupportedPortError):
        resolve([FullPackageSpec(spec("winonly"))], ports)


def test_unsupported_port_can_be_skipped():
    ports = provider(recipe("winonly", supports="windows"), recipe("zlib"))
    graph = resolve(
        [FullPackageSpec(spec("winonly")), FullPackageSpec(spec("zlib"))],
        ports,
        unsupported_port_action=UnsupportedPortAction.WARN,
    )
    assert list(graph.nodes) == [spec("zlib")]
    assert spec("winonly") in graph.excluded
    assert len(graph.warnings) == 1


def test_dependent_of_skipped_port_fails():
    ports = provider(recipe("app", dependencies=["winonly"]), recipe("winonly", supports="windows"))
    with pytest.raises(UnsupportedPortError):
        resolve(
            [FullPackageSpec(spec("app"))],
            ports,
            unsupported_port_action=UnsupportedPortAction.WARN,
        )


def test_dependent_of_skipped_port_uses_installed_copy():
    ports = provider(recipe("app", dependencies=["winonly"]), recipe("winonly", supports="windows"))
    graph = resolve(
        [FullPackageSpec(spec("app"))],
        ports,
        status(installed("winonly")),
        unsupported_port_action=UnsupportedPortAction.WARN,
    )
    assert graph.order == [spec("app")]
    assert graph[spec("app")].dependencies == (spec("winonly"),)


def test_platform_filtered_dependency():
    ports = provider(
        recipe("curl", dependencies=[Dependency("schannel", platform="windows"), "zlib"]),
        recipe("schannel"),
        recipe("zlib"),
    )
    graph = resolve([FullPackageSpec(spec("curl"))], ports)
    assert spec("schannel") not in graph
    graph = resolve([FullPackageSpec(spec("curl", "x64-windows"))], ports)
    assert spec("schannel", "x64-windows") in graph


def curl_ports():
    return provider(
        recipe(
            "curl",
            dependencies=["zlib"],
            features=[
                Feature("ssl", dependencies=(Dependency("openssl"),)),
                Feature("http2", dependencies=(Dependency("nghttp2"),)),
            ],
            default_features=["ssl"],
        ),
        recipe("zlib"),
        recipe("openssl"),
        recipe("nghttp2"),
    )


def test_default_features_apply_to_new_packages():
    graph = resolve([FullPackageSpec(spec("curl"))], curl_ports())
    assert graph[spec("curl")].features == {"ssl"}
    assert spec("openssl") in graph


def test_core_skips_default_features():
    full = make_full_spec(spec("curl"), ["core", "http2"], default_features=True)
    graph = resolve([full], curl_ports())
    assert graph[spec("curl")].features == {"http2"}
    assert graph[spec("curl")].requested_features == {"http2"}
    assert spec("openssl") not in graph
    assert spec("nghttp2") in graph


def test_default_features_not_forced_on_installed_package():
    db = status(installed("curl", deps=["zlib:x64-linux"]), installed("zlib"))
    graph = resolve([FullPackageSpec(spec("curl"))], curl_ports(), db)
    assert graph[spec("curl")].features == frozenset()
    assert spec("openssl") not in graph


def test_installed_features_are_kept():
    db = status(installed("curl", features=["http2", "gone"]))
    graph = resolve([FullPackageSpec(spec("curl"))], curl_ports(), db)
    assert graph[spec("curl")].features == {"http2"}
    assert any("gone" in w for w in graph.warnings)


def test_features_are_merged_across_requesters():
    ports = provider(
        recipe("a", dependencies=[Dependency("c", features=("x",))]),
        recipe("b", dependencies=[Dependency("c", features=("y",))]),
        recipe(
            "c",
            features=[
                Feature("x", dependencies=(Dependency("dx"),)),
                Feature("y", dependencies=(Dependency("dy"),)),
            ],
        ),
        recipe("dx"),
        recipe("dy"),
    )
    graph = resolve([FullPackageSpec(spec("a")), FullPackageSpec(spec("b"))], ports)
    assert graph[spec("c")].features == {"x", "y"}
    assert graph[spec("c")].dependencies == (spec("dx"), spec("dy"))


def test_unknown_feature_is_rejected():
    with pytest.raises(GenericError):
        resolve([FullPackageSpec(spec("curl"), ("quic",))], curl_ports())


def test_recipe_less_installed_package_is_a_leaf():
    db = status(installed("legacy", "0.9", deps=["zlib:x64-linux"]), installed("zlib"))
    ports = provider(recipe("app", dependencies=["legacy"]), recipe("zlib"))
    graph = resolve([FullPackageSpec(spec("app"))], ports, db)
    legacy = graph[spec("legacy")]
    assert legacy.recipe is None
    assert str(legacy.version) == "0.9#0"
    assert legacy.dependencies == (spec("zlib"),)


def test_self_dependency_is_a_cycle():
    ports = provider(recipe("a", dependencies=["a"]))
    with pytest.raises(DependencyCycleError) as excinfo:
        resolve([FullPackageSpec(spec("a"))], ports)
    assert excinfo.value.cycle == [spec("a"), spec("a")]


def test_self_dependency_on_features_is_allowed():
    ports = provider(
        recipe(
            "a",
            features=[
                Feature("x", dependencies=(Dependency("a", features=("y",)),)),
                Feature("y", dependencies=(Dependency("b"),)),
            ],
        ),
        recipe("b"),
    )
    graph = resolve([FullPackageSpec(spec("a"), ("x",))], ports)
    assert graph[spec("a")].features == {"x", "y"}
    assert graph[spec("a")].dependencies == (spec("b"),)


def test_host_self_dependency_on_native_triplet_is_skipped():
    ports = provider(recipe("protoc", dependencies=[Dependency("protoc", host=True)]))
    graph = resolve([FullPackageSpec(spec("protoc"))], ports)
    assert graph.order == [spec("protoc")]
    graph = resolve(
        [FullPackageSpec(spec("protoc", "arm64-linux"))], ports, host_triplet="x64-linux"
    )
    assert graph.order == [spec("protoc", "x64-linux"), spec("protoc", "arm64-linux")]
