from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from lifecycle_kernel.config.models import KernelConfig
from lifecycle_kernel.kernel.collector import ThrowableCollector
from lifecycle_kernel.kernel.context import ExtensionContext, TestInstances
from lifecycle_kernel.kernel.errors import (
    ExtensionConfigurationError,
    KernelError,
    KernelInternalError,
    ParameterResolutionError,
    PreconditionViolationError,
    TestInstantiationError,
)
from lifecycle_kernel.kernel.extensions import (
    AfterAllCallback,
    AfterEachCallback,
    AfterEachMethodAdapter,
    AfterTestExecutionCallback,
    BeforeAllCallback,
    BeforeEachCallback,
    BeforeEachMethodAdapter,
    BeforeTestExecutionCallback,
    ExtensionRegistry,
    InvocationInterceptor,
    LifecycleMethodExecutionExceptionHandler,
    ParameterContext,
    ParameterResolver,
    TestExecutionExceptionHandler,
    TestInstanceFactory,
    TestInstanceFactoryContext,
    TestInstancePostProcessor,
    TestInstancePreConstructCallback,
    TestInstancePreDestroyCallback,
)
from lifecycle_kernel.kernel.invocation import CallableInvocation, InvocationContext, invoke_with_interceptors
from lifecycle_kernel.kernel.listener import ExecutionListener, ExecutionResult
from lifecycle_kernel.kernel.tree import ContainerNode, EngineNode, InstanceLifecycle, LifecycleMethod, TestCaseNode
from lifecycle_kernel.observability.logger import KernelLogger, get_logger
from lifecycle_kernel.ordering.orderers import Orderer, apply_orderer, parse_seed, resolve_orderer
from lifecycle_kernel.store.hierarchical_store import NamespacedHierarchicalStore, close_closeable_resources
from lifecycle_kernel.timeout.extension import TimeoutExtension, declare_node_timeout

# Interceptor hook and exception handler hook per lifecycle method phase.
_LIFECYCLE_PHASES = {
    "before_all": ("intercept_before_all_method", "handle_before_all_method_execution_exception"),
    "before_each": ("intercept_before_each_method", "handle_before_each_method_execution_exception"),
    "after_each": ("intercept_after_each_method", "handle_after_each_method_execution_exception"),
    "after_all": ("intercept_after_all_method", "handle_after_all_method_execution_exception"),
}


@dataclass(slots=True)
class _ContainerScope:
    # Mutable per-container execution state; lives while the container is open.
    node: ContainerNode
    context: ExtensionContext
    registry: ExtensionRegistry
    parent: _ContainerScope | None
    lifecycle: InstanceLifecycle
    factory: TestInstanceFactory | None = None
    instances: TestInstances | None = None
    method_orderer: Orderer | None = None
    class_orderer: Orderer | None = None
    created: list[_CreatedInstance] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _CreatedInstance:
    instance: object
    scope: _ContainerScope


def _hook(name: str) -> Callable[[Any, Any, InvocationContext, ExtensionContext], Any]:
    def call(interceptor: Any, invocation: Any, invocation_context: InvocationContext, context: ExtensionContext) -> Any:
        return getattr(interceptor, name)(invocation, invocation_context, context)

    return call


def _handle_failure(failure: Exception, handlers: Sequence[Any], handle: Callable[[Any, Exception], None]) -> None:
    # A handler swallows by returning; whatever it raises goes to the next one, and the last failure propagates.
    if isinstance(failure, KernelInternalError):
        raise failure
    for handler in handlers:
        try:
            handle(handler, failure)
        except Exception as exc:
            failure = exc
        else:
            return
    raise failure


class LifecycleOrchestrator:
    # Walks one engine tree depth-first and runs every callback category in order per node.
    def __init__(
        self,
        config: KernelConfig | None = None,
        listener: ExecutionListener | None = None,
        logger: KernelLogger | None = None,
        *,
        default_extensions: Sequence[object] | None = None,
    ) -> None:
        self._config = config if config is not None else KernelConfig()
        self._listener = listener if listener is not None else ExecutionListener()
        self._logger = logger if logger is not None else get_logger("lifecycle_kernel.orchestrator")
        if default_extensions is None:
            default_extensions = (TimeoutExtension(),)
        self._default_extensions = tuple(default_extensions)
        order = self._config.execution.order
        self._random_seed = parse_seed(order.random_seed, self._logger)
        self._method_orderer = self._configured_orderer(order.method_default, "execution.order.method_default")
        self._class_orderer = self._configured_orderer(order.class_default, "execution.order.class_default")
        self._abort_error: Exception | None = None

    def _configured_orderer(self, identifier: str | None, key: str) -> Orderer | None:
        try:
            return resolve_orderer(identifier, self._random_seed)
        except ExtensionConfigurationError as exc:
            self._logger.warning(
                f"Ignored invalid orderer '{identifier}' set via the '{key}' configuration parameter.",
                error=str(exc),
            )
            return None

    def execute(self, engine: EngineNode) -> ExecutionResult:
        if not isinstance(engine, EngineNode):
            raise PreconditionViolationError("execute() requires an EngineNode")
        self._abort_error = None
        unique_id = f"[engine:{engine.name}]"
        collector = ThrowableCollector()
        context = ExtensionContext(
            parent=None,
            node=engine,
            store=NamespacedHierarchicalStore(None, close_closeable_resources),
            unique_id=unique_id,
            configuration=self._config,
            collector=collector,
        )
        registry = ExtensionRegistry()
        self._started(unique_id, engine)

        class_orderer: list[Orderer | None] = []

        def prepare() -> None:
            for extension in (*self._default_extensions, *engine.extensions):
                registry.register(extension)
            override = engine.class_orderer
            class_orderer.append(self._class_orderer if override is None else resolve_orderer(override, self._random_seed))

        ordered: list[object] = []
        if collector.execute(prepare) and collector.execute(
            lambda: ordered.extend(apply_orderer(class_orderer[0], engine.children, self._logger))
        ):
            for container in ordered:
                self._execute_container(container, None, context, registry)  # type: ignore[arg-type]
        else:
            self._skip_all(engine.children, unique_id, "container", f"Engine {unique_id} failed")

        # Root store close shuts down shared resources such as the timeout watcher.
        collector.execute(context.close)
        if self._abort_error is not None and self._abort_error not in collector.failures():
            collector.add(self._abort_error)
        return self._finish(unique_id, engine, collector)

    # Containers.

    def _execute_container(
        self,
        node: ContainerNode,
        parent_scope: _ContainerScope | None,
        parent_context: ExtensionContext,
        parent_registry: ExtensionRegistry,
    ) -> None:
        unique_id = f"{parent_context.get_unique_id()}/[container:{node.name}]"
        if self._abort_error is not None:
            self._skip(unique_id, node, self._abort_reason())
            return
        collector = ThrowableCollector()
        lifecycle = node.lifecycle or InstanceLifecycle(self._config.execution.instance_lifecycle_default)
        context = parent_context.create_child(
            node=node,
            unique_id=unique_id,
            lifecycle=lifecycle,
            element=node.test_class,
            collector=collector,
        )
        scope = _ContainerScope(
            node=node,
            context=context,
            registry=ExtensionRegistry(parent_registry),
            parent=parent_scope,
            lifecycle=lifecycle,
        )
        self._started(unique_id, node)

        # Configuration problems fail the container before any lifecycle work.
        collector.execute(lambda: self._prepare_container(scope))

        if collector.is_empty and lifecycle is InstanceLifecycle.PER_CONTAINER and node.test_class is not None:
            collector.execute(lambda: self._instantiate_container_scope(scope))

        before_all_callbacks_started = False
        before_all_methods_started = False
        if collector.is_empty:
            before_all_callbacks_started = True
            for callback in scope.registry.get_extensions(BeforeAllCallback):
                if not collector.execute(lambda callback=callback: callback.before_all(context)):
                    break
        if collector.is_empty:
            before_all_methods_started = True
            target = self._container_target(scope)
            for method in node.before_all_methods:
                if not collector.execute(
                    lambda method=method: self._invoke_lifecycle_method(
                        method, target, context, scope.registry, "before_all"
                    )
                ):
                    break

        ordered: list[object] = []
        if collector.is_empty and collector.execute(lambda: ordered.extend(self._ordered_children(scope))):
            for child in ordered:
                if isinstance(child, TestCaseNode):
                    self._execute_test(child, scope)
                else:
                    self._execute_container(child, scope, context, scope.registry)  # type: ignore[arg-type]
        else:
            self._skip_all(node.children, unique_id, None, f"Container {unique_id} failed")

        # After-all phases mirror the before-all phases that actually started.
        if before_all_methods_started:
            target = self._container_target(scope)
            for method in node.after_all_methods:
                collector.execute(
                    lambda method=method: self._invoke_lifecycle_method(
                        method, target, context, scope.registry, "after_all"
                    )
                )
        if before_all_callbacks_started:
            for callback in scope.registry.get_reversed_extensions(AfterAllCallback):
                collector.execute(lambda callback=callback: callback.after_all(context))

        self._pre_destroy(scope.created, context, collector)
        collector.execute(context.close)
        self._finish(unique_id, node, collector)

    def _prepare_container(self, scope: _ContainerScope) -> None:
        node = scope.node
        declare_node_timeout(scope.context, node)
        for extension in node.extensions:
            scope.registry.register(extension)
        for method in node.before_each_methods:
            scope.registry.register(BeforeEachMethodAdapter(method, node.test_class))
        for method in node.after_each_methods:
            scope.registry.register(AfterEachMethodAdapter(method, node.test_class))
        if node.test_class is not None:
            scope.factory = scope.registry.resolve_instance_factory(node.test_class)
        scope.method_orderer = self._method_orderer
        if node.method_orderer is not None:
            scope.method_orderer = resolve_orderer(node.method_orderer, self._random_seed)
        scope.class_orderer = self._class_orderer
        if node.class_orderer is not None:
            scope.class_orderer = resolve_orderer(node.class_orderer, self._random_seed)

    def _ordered_children(self, scope: _ContainerScope) -> list[object]:
        # Tests run before nested containers; each group is ordered on its own.
        tests = apply_orderer(scope.method_orderer, scope.node.tests, self._logger)
        containers = apply_orderer(scope.class_orderer, scope.node.containers, self._logger)
        return [*tests, *containers]

    def _instantiate_container_scope(self, scope: _ContainerScope) -> None:
        scope.instances = self._provide_instances(scope, scope.context, scope.created)
        scope.context.set_test_instances(scope.instances)

    def _container_target(self, scope: _ContainerScope) -> object | None:
        if scope.instances is None or scope.node.test_class is None:
            return None
        return scope.instances.find(scope.node.test_class)

    # Test cases.

    def _execute_test(self, node: TestCaseNode, scope: _ContainerScope) -> None:
        unique_id = f"{scope.context.get_unique_id()}/[test:{node.name}]"
        if self._abort_error is not None:
            self._skip(unique_id, node, self._abort_reason())
            return
        collector = ThrowableCollector()
        context = scope.context.create_child(
            node=node,
            unique_id=unique_id,
            lifecycle=scope.lifecycle,
            element=node.body,
            collector=collector,
        )
        registry = ExtensionRegistry(scope.registry)
        created: list[_CreatedInstance] = []

        def register() -> None:
            declare_node_timeout(context, node)
            for extension in node.extensions:
                registry.register(extension)

        holder: list[TestInstances | None] = []
        if collector.execute(register) and scope.node.test_class is not None:
            collector.execute(lambda: holder.append(self._provide_instances(scope, context, created)))

        if not collector.is_empty:
            # Instantiation failed: the test never starts, but constructed instances are released.
            self._pre_destroy(created, context, collector)
            collector.execute(context.close)
            self._finish(unique_id, node, collector)
            return

        instances = holder[0] if holder else None
        context.set_test_instances(instances)
        self._started(unique_id, node)

        for callback in registry.get_extensions(BeforeEachCallback):
            if not collector.execute(lambda callback=callback: callback.before_each(context)):
                break
        if collector.is_empty:
            for adapter in registry.get_extensions(BeforeEachMethodAdapter):
                if not collector.execute(
                    lambda adapter=adapter: self._invoke_lifecycle_method(
                        adapter.method,
                        self._adapter_target(adapter.test_class, context),
                        context,
                        registry,
                        "before_each",
                    )
                ):
                    break
            if collector.is_empty:
                self._execute_test_method(node, instances, context, registry, collector)
            for adapter in registry.get_reversed_extensions(AfterEachMethodAdapter):
                collector.execute(
                    lambda adapter=adapter: self._invoke_lifecycle_method(
                        adapter.method,
                        self._adapter_target(adapter.test_class, context),
                        context,
                        registry,
                        "after_each",
                    )
                )
        for callback in registry.get_reversed_extensions(AfterEachCallback):
            collector.execute(lambda callback=callback: callback.after_each(context))

        self._pre_destroy(created, context, collector)
        collector.execute(context.close)
        self._finish(unique_id, node, collector)

    def _execute_test_method(
        self,
        node: TestCaseNode,
        instances: TestInstances | None,
        context: ExtensionContext,
        registry: ExtensionRegistry,
        collector: ThrowableCollector,
    ) -> None:
        # Before-test-execution callbacks short-circuit; after-test-execution callbacks all run, inner to outer.
        for callback in registry.get_extensions(BeforeTestExecutionCallback):
            if not collector.execute(lambda callback=callback: callback.before_test_execution(context)):
                break
        if collector.is_empty:
            collector.execute(lambda: self._invoke_test_body(node, instances, context, registry))
        for callback in registry.get_reversed_extensions(AfterTestExecutionCallback):
            collector.execute(lambda callback=callback: callback.after_test_execution(context))

    def _adapter_target(self, test_class: type | None, context: ExtensionContext) -> object | None:
        if test_class is None:
            return None
        instances = context.get_test_instances()
        instance = None if instances is None else instances.find(test_class)
        if instance is None:
            raise PreconditionViolationError(
                f"Illegal state: no instance of [{_qualified_class(test_class)}] for {context.get_unique_id()}"
            )
        return instance

    def _invoke_test_body(
        self,
        node: TestCaseNode,
        instances: TestInstances | None,
        context: ExtensionContext,
        registry: ExtensionRegistry,
    ) -> None:
        description = f"{node.name}({', '.join(node.parameters)})"
        target = None if instances is None else instances.innermost
        try:
            arguments = self._resolve_parameters(node, description, context, registry)
            if target is None:
                invocation = CallableInvocation(lambda: node.body(**arguments))
            else:
                invocation = CallableInvocation(lambda: node.body(target, **arguments))
            invoke_with_interceptors(
                invocation,
                registry.get_extensions(InvocationInterceptor),
                _hook("intercept_test_method"),
                InvocationContext(description, node.body, target, arguments),
                context,
            )
        except Exception as exc:
            _handle_failure(
                exc,
                registry.get_reversed_extensions(TestExecutionExceptionHandler),
                lambda handler, failure: handler.handle_test_execution_exception(context, failure),
            )

    def _resolve_parameters(
        self,
        node: TestCaseNode,
        description: str,
        context: ExtensionContext,
        registry: ExtensionRegistry,
    ) -> dict[str, object]:
        resolvers = registry.get_extensions(ParameterResolver)
        arguments: dict[str, object] = {}
        for index, name in enumerate(node.parameters):
            parameter = ParameterContext(name=name, index=index, target=node)
            matching = [resolver for resolver in resolvers if resolver.supports_parameter(parameter, context)]
            if not matching:
                raise ParameterResolutionError(
                    f"No ParameterResolver registered for parameter [{name}] in {description}."
                )
            if len(matching) > 1:
                names = ", ".join(_qualified_class(type(resolver)) for resolver in matching)
                raise ParameterResolutionError(
                    f"Discovered multiple competing ParameterResolvers for parameter [{name}] in {description}: {names}"
                )
            try:
                arguments[name] = matching[0].resolve_parameter(parameter, context)
            except KernelError:
                raise
            except Exception as exc:
                raise ParameterResolutionError(
                    f"Failed to resolve parameter [{name}] in {description}: {exc}"
                ) from exc
        return arguments

    # Instances.

    def _provide_instances(
        self,
        scope: _ContainerScope,
        context: ExtensionContext,
        created: list[_CreatedInstance],
    ) -> TestInstances | None:
        # Enclosing per-test instances are re-created for every call, outermost first.
        if scope.node.test_class is None:
            return None
        if scope.instances is not None:
            return scope.instances
        enclosing = None
        if scope.parent is not None and scope.parent.node.test_class is not None:
            enclosing = self._provide_instances(scope.parent, context, created)
        return self._instantiate(scope, enclosing, context, created)

    def _instantiate(
        self,
        scope: _ContainerScope,
        enclosing: TestInstances | None,
        context: ExtensionContext,
        created: list[_CreatedInstance],
    ) -> TestInstances:
        test_class = scope.node.test_class
        if test_class is None:
            raise KernelInternalError(
                f"Cannot instantiate container {scope.context.get_unique_id()} without a test class"
            )
        factory_context = TestInstanceFactoryContext(
            test_class=test_class,
            outer_instance=None if enclosing is None else enclosing.innermost,
        )
        for callback in scope.registry.get_extensions(TestInstancePreConstructCallback):
            callback.pre_construct_test_instance(factory_context, context)
        instance = self._construct(scope.factory, factory_context, context)
        created.append(_CreatedInstance(instance, scope))
        for processor in scope.registry.get_extensions(TestInstancePostProcessor):
            processor.post_process_test_instance(instance, context)
        return TestInstances((instance,)) if enclosing is None else enclosing.extend(instance)

    def _construct(
        self,
        factory: TestInstanceFactory | None,
        factory_context: TestInstanceFactoryContext,
        context: ExtensionContext,
    ) -> object:
        test_class = factory_context.test_class
        if factory is None:
            return test_class()
        try:
            instance = factory.create_test_instance(factory_context, context)
        except KernelError:
            raise
        except Exception as exc:
            raise TestInstantiationError(
                f"TestInstanceFactory [{_qualified_class(type(factory))}] failed to instantiate test class "
                f"[{_qualified_class(test_class)}]: {exc}"
            ) from exc
        if not isinstance(instance, test_class):
            returned = "None" if instance is None else _qualified_class(type(instance))
            raise TestInstantiationError(
                f"TestInstanceFactory [{_qualified_class(type(factory))}] failed to return an instance of "
                f"[{_qualified_class(test_class)}] and instead returned an instance of [{returned}]."
            )
        return instance

    def _pre_destroy(
        self,
        created: list[_CreatedInstance],
        context: ExtensionContext,
        collector: ThrowableCollector,
    ) -> None:
        # Innermost instance first; each instance sees the callbacks of the level that built it, inner to outer.
        for entry in reversed(created):
            for callback in entry.scope.registry.get_reversed_extensions(TestInstancePreDestroyCallback):
                collector.execute(
                    lambda callback=callback, entry=entry: callback.pre_destroy_test_instance(entry.instance, context)
                )
        created.clear()

    # Invocations.

    def _invoke_lifecycle_method(
        self,
        method: LifecycleMethod,
        target: object | None,
        context: ExtensionContext,
        registry: ExtensionRegistry,
        phase: str,
    ) -> None:
        hook, handler_name = _LIFECYCLE_PHASES[phase]
        if target is None:
            invocation = CallableInvocation(method.call)
        else:
            invocation = CallableInvocation(lambda: method.call(target))
        try:
            invoke_with_interceptors(
                invocation,
                registry.get_extensions(InvocationInterceptor),
                _hook(hook),
                InvocationContext(f"{method.display_name}()", method.call, target, {}, method.timeout),
                context,
            )
        except Exception as exc:
            _handle_failure(
                exc,
                registry.get_reversed_extensions(LifecycleMethodExecutionExceptionHandler),
                lambda handler, failure: getattr(handler, handler_name)(context, failure),
            )

    # Reporting.

    def _started(self, unique_id: str, node: object) -> None:
        self._logger.debug("Node started", unique_id=unique_id)
        self._notify(lambda: self._listener.execution_started(unique_id, node))

    def _finish(self, unique_id: str, node: object, collector: ThrowableCollector) -> ExecutionResult:
        result = collector.to_result()
        if self._abort_error is None:
            internal = collector.internal_failure
            if internal is not None:
                self._abort_error = internal
                self._logger.error(
                    "Aborting run after internal error",
                    unique_id=unique_id,
                    error=repr(internal),
                )
        self._logger.debug(
            "Node finished",
            unique_id=unique_id,
            status=result.status.value,
            kind=None if result.kind is None else result.kind.value,
        )
        self._notify(lambda: self._listener.execution_finished(unique_id, node, result))
        return result

    def _skip(self, unique_id: str, node: object, reason: str) -> None:
        self._logger.info("Node skipped", unique_id=unique_id, reason=reason)
        self._notify(lambda: self._listener.execution_skipped(unique_id, node, reason))

    def _skip_all(self, nodes: Sequence[object], parent_id: str, kind: str | None, reason: str) -> None:
        for node in nodes:
            segment = kind or ("test" if isinstance(node, TestCaseNode) else "container")
            self._skip(f"{parent_id}/[{segment}:{getattr(node, 'name', node)}]", node, reason)

    def _abort_reason(self) -> str:
        return f"Run aborted after internal error: {self._abort_error}"

    def _notify(self, action: Callable[[], None]) -> None:
        try:
            action()
        except Exception as exc:  # noqa: BLE001 - reporting failures must not break the traversal
            self._logger.error("Execution listener failed", error=repr(exc))


def _qualified_class(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"
