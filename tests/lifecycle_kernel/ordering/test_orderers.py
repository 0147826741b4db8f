from __future__ import annotations

import pytest

from lifecycle_kernel.config.models import KernelConfig
from lifecycle_kernel.kernel.errors import ExtensionConfigurationError
from lifecycle_kernel.kernel.orchestrator import LifecycleOrchestrator
from lifecycle_kernel.kernel.tree import ContainerNode, EngineNode, TestCaseNode
from lifecycle_kernel.ordering.descriptor import DEFAULT_ORDER, OrderingDescriptor
from lifecycle_kernel.ordering.orderers import (
    ClassName,
    DisplayName,
    MethodName,
    OrderAnnotation,
    Orderer,
    Random,
    apply_orderer,
    parse_seed,
    resolve_orderer,
)


def _noop() -> None:
    return None


def _tests(*names: str) -> list[TestCaseNode]:
    return [TestCaseNode(name=name, body=_noop) for name in names]


def _names(nodes) -> list[str]:
    return [node.name for node in nodes]


class Reversing(Orderer):
    def order(self, descriptors):
        return list(reversed(descriptors))


class _Dropping(Orderer):
    def order(self, descriptors):
        return list(descriptors[1:])


class _Inventing(Orderer):
    def order(self, descriptors):
        extra = OrderingDescriptor.of(TestCaseNode(name="intruder", body=_noop))
        return [extra, *descriptors]


def test_method_name_sorts_lexicographically() -> None:
    assert _names(apply_orderer(MethodName(), _tests("c", "a", "b"))) == ["a", "b", "c"]


def test_method_name_breaks_ties_with_parameters() -> None:
    nodes = [
        TestCaseNode(name="same", body=_noop, parameters=("y",), display_name="second"),
        TestCaseNode(name="same", body=_noop, parameters=("x",), display_name="first"),
    ]
    assert [node.label for node in apply_orderer(MethodName(), nodes)] == ["first", "second"]


def test_declared_order_is_ascending_and_stable() -> None:
    # Undeclared nodes sort as the default order; ties keep discovery order.
    nodes = [
        TestCaseNode(name="none_first", body=_noop),
        TestCaseNode(name="ten", body=_noop, order=10),
        TestCaseNode(name="two", body=_noop, order=2),
        TestCaseNode(name="none_second", body=_noop),
        TestCaseNode(name="late", body=_noop, order=DEFAULT_ORDER + 1),
    ]
    assert _names(apply_orderer(OrderAnnotation(), nodes)) == ["two", "ten", "none_first", "none_second", "late"]


def test_display_name_orders_by_label() -> None:
    nodes = [
        TestCaseNode(name="a", body=_noop, display_name="zeta"),
        TestCaseNode(name="b", body=_noop, display_name="alpha"),
    ]
    assert _names(apply_orderer(DisplayName(), nodes)) == ["b", "a"]


def test_class_name_uses_qualified_test_class() -> None:
    class Zulu:
        pass

    class Alpha:
        pass

    nodes = [ContainerNode(name="z", test_class=Zulu), ContainerNode(name="a", test_class=Alpha)]
    assert _names(apply_orderer(ClassName(), nodes)) == ["a", "z"]


def test_random_with_equal_seeds_is_reproducible() -> None:
    nodes = _tests(*[f"t{index}" for index in range(20)])
    first = _names(apply_orderer(Random(1234), nodes))
    second = _names(apply_orderer(Random(1234), nodes))
    assert first == second
    assert sorted(first) == sorted(_names(nodes))


def test_random_without_seed_logs_default_seed_once(log_sink) -> None:
    from lifecycle_kernel.ordering import orderers

    orderers._default_seed_logged.clear()
    Random().order([])
    Random().order([])
    assert len(log_sink.find("info", "Random orderer default seed")) == 1
    assert Random().seed == orderers.DEFAULT_SEED


def test_dropped_descriptors_are_appended_with_warning(log_sink) -> None:
    nodes = _tests("a", "b", "c")
    assert _names(apply_orderer(_Dropping(), nodes)) == ["b", "c", "a"]
    assert log_sink.find("warning", "added or removed descriptors")


def test_foreign_descriptors_are_ignored_with_warning(log_sink) -> None:
    nodes = _tests("a", "b")
    assert _names(apply_orderer(_Inventing(), nodes)) == ["a", "b"]
    assert log_sink.find("warning", "added or removed descriptors")


def test_resolve_accepts_ids_classes_instances_and_import_paths() -> None:
    assert isinstance(resolve_orderer("method_name"), MethodName)
    assert isinstance(resolve_orderer(DisplayName), DisplayName)
    instance = ClassName()
    assert resolve_orderer(instance) is instance
    assert isinstance(resolve_orderer(f"{__name__}:Reversing"), Reversing)
    assert resolve_orderer(None) is None
    seeded = resolve_orderer("random", 99)
    assert isinstance(seeded, Random)
    assert seeded.seed == 99


@pytest.mark.parametrize("identifier", ["sideways", "no.such.module:Orderer", f"{__name__}:_noop", 42])
def test_resolve_rejects_unknown_orderers(identifier: object) -> None:
    with pytest.raises(ExtensionConfigurationError):
        resolve_orderer(identifier)


def test_parse_seed_logs_and_falls_back(log_sink) -> None:
    assert parse_seed("not-a-number") is None
    assert log_sink.find("warning", "Failed to convert configuration parameter [execution.order.random_seed]")
    assert parse_seed("42") == 42
    assert parse_seed(None) is None


def test_configured_method_orderer_is_applied_by_orchestrator(calls) -> None:
    config = KernelConfig.model_validate({"execution": {"order": {"method_default": "method_name"}}})
    container = ContainerNode(
        name="C",
        children=(
            TestCaseNode(name="c", body=calls.recorder("c")),
            TestCaseNode(name="a", body=calls.recorder("a")),
            TestCaseNode(name="b", body=calls.recorder("b")),
        ),
    )
    LifecycleOrchestrator(config).execute(EngineNode(children=(container,)))
    assert calls.entries == ["a", "b", "c"]


def test_container_orderer_overrides_configuration(calls) -> None:
    config = KernelConfig.model_validate({"execution": {"order": {"method_default": "method_name"}}})
    container = ContainerNode(
        name="C",
        method_orderer=Reversing,
        children=(TestCaseNode(name="a", body=calls.recorder("a")), TestCaseNode(name="b", body=calls.recorder("b"))),
    )
    LifecycleOrchestrator(config).execute(EngineNode(children=(container,)))
    assert calls.entries == ["b", "a"]


def test_invalid_configured_orderer_is_ignored(log_sink, calls) -> None:
    config = KernelConfig.model_validate({"execution": {"order": {"class_default": "bogus"}}})
    engine = EngineNode(
        children=(
            ContainerNode(name="B", children=(TestCaseNode(name="b", body=calls.recorder("b")),)),
            ContainerNode(name="A", children=(TestCaseNode(name="a", body=calls.recorder("a")),)),
        )
    )
    LifecycleOrchestrator(config).execute(engine)
    assert calls.entries == ["b", "a"]
    assert log_sink.find("warning", "Ignored invalid orderer 'bogus'")
