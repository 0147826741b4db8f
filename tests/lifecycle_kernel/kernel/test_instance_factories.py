from __future__ import annotations

import pytest

from lifecycle_kernel.config.models import KernelConfig
from lifecycle_kernel.kernel.context import ExtensionContext
from lifecycle_kernel.kernel.errors import (
    ExtensionConfigurationError,
    FailureKind,
    KernelInternalError,
    TestInstantiationError,
)
from lifecycle_kernel.kernel.extensions import (
    BeforeAllCallback,
    BeforeEachCallback,
    ExtensionRegistry,
    TestInstanceFactory,
    TestInstancePostProcessor,
    TestInstancePreConstructCallback,
    TestInstancePreDestroyCallback,
)
from lifecycle_kernel.kernel.listener import ExecutionStatus, RecordingExecutionListener
from lifecycle_kernel.kernel.orchestrator import LifecycleOrchestrator, _ContainerScope
from lifecycle_kernel.kernel.tree import ContainerNode, EngineNode, InstanceLifecycle, TestCaseNode
from lifecycle_kernel.store.hierarchical_store import NamespacedHierarchicalStore


class _Sample:
    def __init__(self, origin: str = "default", outer: object = None) -> None:
        self.origin = origin
        self.outer = outer


class _Nested:
    def __init__(self, origin: str = "default", outer: object = None) -> None:
        self.origin = origin
        self.outer = outer


class _Factory(TestInstanceFactory):
    def __init__(self, label: str) -> None:
        self.label = label

    def create_test_instance(self, factory_context, context) -> object:
        return factory_context.test_class(self.label, factory_context.outer_instance)


class _WrongTypeFactory(TestInstanceFactory):
    def create_test_instance(self, factory_context, context) -> object:
        return "not an instance"


class _ExplodingFactory(TestInstanceFactory):
    def create_test_instance(self, factory_context, context) -> object:
        raise RuntimeError("factory exploded")


class _Hooks(BeforeAllCallback, BeforeEachCallback, TestInstancePreDestroyCallback):
    def __init__(self, calls) -> None:
        self._calls = calls

    def before_all(self, context) -> None:
        self._calls.record("before_all")

    def before_each(self, context) -> None:
        self._calls.record("before_each")

    def pre_destroy_test_instance(self, instance, context) -> None:
        self._calls.record(f"pre_destroy:{type(instance).__name__}")


class _FailingPostProcessor(TestInstancePostProcessor):
    def __init__(self, fail_for: type) -> None:
        self._fail_for = fail_for

    def post_process_test_instance(self, instance, context) -> None:
        if type(instance) is self._fail_for:
            raise RuntimeError("post-processing failed")


class _RefusingPreConstruct(TestInstancePreConstructCallback):
    def __init__(self, calls) -> None:
        self._calls = calls

    def pre_construct_test_instance(self, factory_context, context) -> None:
        self._calls.record("pre_construct")
        raise RuntimeError("not today")


class _RecordingFactory(TestInstanceFactory):
    def __init__(self, calls) -> None:
        self._calls = calls

    def create_test_instance(self, factory_context, context) -> object:
        self._calls.record("construct")
        return factory_context.test_class()


def _run(*containers: ContainerNode) -> RecordingExecutionListener:
    listener = RecordingExecutionListener()
    LifecycleOrchestrator(listener=listener).execute(EngineNode(children=containers))
    return listener


def test_two_factories_at_same_level_fail_before_construction(calls) -> None:
    # Conflicting factories are a configuration error; no hook for the test runs.
    container = ContainerNode(
        name="Conflict",
        test_class=_Sample,
        extensions=(_Factory("a"), _Factory("b"), _Hooks(calls)),
        children=(TestCaseNode(name="never", body=calls.recorder("body")),),
    )
    listener = _run(container)
    result = listener.result_for("[container:Conflict]")
    assert result.status is ExecutionStatus.FAILED
    assert isinstance(result.failure, ExtensionConfigurationError)
    assert result.kind is FailureKind.CONFIGURATION
    assert "but only one is permitted" in str(result.failure)
    assert calls.entries == []
    assert listener.skipped() == ["[engine:lifecycle-kernel]/[container:Conflict]/[test:never]"]


def test_innermost_factory_wins() -> None:
    # A nested level with its own factory overrides the enclosing level's factory.
    seen: list[object] = []
    nested = ContainerNode(
        name="Nested",
        test_class=_Nested,
        extensions=(_Factory("inner"),),
        children=(TestCaseNode(name="check", body=lambda self: seen.append(self)),),
    )
    outer = ContainerNode(
        name="Outer",
        test_class=_Sample,
        extensions=(_Factory("outer"),),
        children=(nested,),
    )
    listener = _run(outer)
    assert listener.result_for("[test:check]").is_successful
    instance = seen[0]
    assert instance.origin == "inner"
    assert isinstance(instance.outer, _Sample)
    assert instance.outer.origin == "outer"


def test_factory_returning_wrong_type_fails_without_start(calls) -> None:
    container = ContainerNode(
        name="Wrong",
        test_class=_Sample,
        extensions=(_WrongTypeFactory(), _Hooks(calls)),
        children=(TestCaseNode(name="t", body=calls.recorder("body")),),
    )
    listener = _run(container)
    result = listener.result_for("[test:t]")
    assert isinstance(result.failure, TestInstantiationError)
    assert "failed to return an instance of" in str(result.failure)
    assert "instead returned an instance of [builtins.str]" in str(result.failure)
    assert result.kind is FailureKind.CALLBACK
    assert "[engine:lifecycle-kernel]/[container:Wrong]/[test:t]" not in listener.started()
    assert "body" not in calls.entries
    assert "before_each" not in calls.entries


def test_factory_failure_is_wrapped_in_instantiation_error() -> None:
    container = ContainerNode(
        name="Exploding",
        test_class=_Sample,
        extensions=(_ExplodingFactory(),),
        children=(TestCaseNode(name="t", body=lambda self: None),),
    )
    result = _run(container).result_for("[test:t]")
    assert isinstance(result.failure, TestInstantiationError)
    assert isinstance(result.failure.__cause__, RuntimeError)


def test_pre_destroy_runs_for_constructed_instances_when_post_processing_fails(calls) -> None:
    # The enclosing instance was post-processed; it is released even though the nested one failed.
    nested = ContainerNode(
        name="Nested",
        test_class=_Nested,
        lifecycle=InstanceLifecycle.PER_TEST,
        extensions=(_FailingPostProcessor(_Nested),),
        children=(TestCaseNode(name="t", body=calls.recorder("body")),),
    )
    outer = ContainerNode(
        name="Outer",
        test_class=_Sample,
        lifecycle=InstanceLifecycle.PER_TEST,
        extensions=(_Hooks(calls),),
        children=(nested,),
    )
    listener = _run(outer)
    result = listener.result_for("[test:t]")
    assert result.status is ExecutionStatus.FAILED
    assert str(result.failure) == "post-processing failed"
    assert "body" not in calls.entries
    assert "before_each" not in calls.entries
    assert calls.entries[-2:] == ["pre_destroy:_Nested", "pre_destroy:_Sample"]


def test_per_container_instantiation_failure_skips_children(calls) -> None:
    container = ContainerNode(
        name="Broken",
        test_class=_Sample,
        lifecycle=InstanceLifecycle.PER_CONTAINER,
        extensions=(_ExplodingFactory(), _Hooks(calls)),
        children=(TestCaseNode(name="t", body=calls.recorder("body")),),
    )
    listener = _run(container)
    assert isinstance(listener.result_for("[container:Broken]").failure, TestInstantiationError)
    assert listener.skipped() == ["[engine:lifecycle-kernel]/[container:Broken]/[test:t]"]
    assert "before_all" not in calls.entries


def test_failing_pre_construct_callback_prevents_construction_and_start(calls) -> None:
    container = ContainerNode(
        name="Refused",
        test_class=_Sample,
        extensions=(_RefusingPreConstruct(calls), _RecordingFactory(calls), _Hooks(calls)),
        children=(TestCaseNode(name="t", body=calls.recorder("body")),),
    )
    listener = _run(container)
    result = listener.result_for("[test:t]")
    assert result.status is ExecutionStatus.FAILED
    assert str(result.failure) == "not today"
    assert "[engine:lifecycle-kernel]/[container:Refused]/[test:t]" not in listener.started()
    assert calls.entries == ["before_all", "pre_construct"]


def test_instantiating_without_test_class_is_an_internal_error() -> None:
    orchestrator = LifecycleOrchestrator()
    node = ContainerNode(name="Bare")
    context = ExtensionContext(
        parent=None,
        node=node,
        store=NamespacedHierarchicalStore(),
        unique_id="[engine:test]/[container:Bare]",
        configuration=KernelConfig(),
    )
    scope = _ContainerScope(
        node=node,
        context=context,
        registry=ExtensionRegistry(),
        parent=None,
        lifecycle=InstanceLifecycle.PER_TEST,
    )
    with pytest.raises(KernelInternalError):
        orchestrator._instantiate(scope, None, context, [])
