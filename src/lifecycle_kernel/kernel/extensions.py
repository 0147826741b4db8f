from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from lifecycle_kernel.kernel.errors import ExtensionConfigurationError

if TYPE_CHECKING:
    from lifecycle_kernel.kernel.context import ExtensionContext
    from lifecycle_kernel.kernel.invocation import Invocation, InvocationContext
    from lifecycle_kernel.kernel.tree import LifecycleMethod

T = TypeVar("T")

# Capability base classes: an extension participates in every category whose base it subclasses.


class Extension:
    pass


@dataclass(frozen=True, slots=True)
class TestInstanceFactoryContext:
    __test__ = False

    test_class: type
    outer_instance: object | None = None


@dataclass(frozen=True, slots=True)
class ParameterContext:
    name: str
    index: int
    target: object


class BeforeAllCallback(Extension):
    def before_all(self, context: ExtensionContext) -> None:
        raise NotImplementedError("BeforeAllCallback.before_all must be implemented")


class AfterAllCallback(Extension):
    def after_all(self, context: ExtensionContext) -> None:
        raise NotImplementedError("AfterAllCallback.after_all must be implemented")


class BeforeEachCallback(Extension):
    def before_each(self, context: ExtensionContext) -> None:
        raise NotImplementedError("BeforeEachCallback.before_each must be implemented")


class AfterEachCallback(Extension):
    def after_each(self, context: ExtensionContext) -> None:
        raise NotImplementedError("AfterEachCallback.after_each must be implemented")


class BeforeTestExecutionCallback(Extension):
    __test__ = False

    def before_test_execution(self, context: ExtensionContext) -> None:
        raise NotImplementedError("BeforeTestExecutionCallback.before_test_execution must be implemented")


class AfterTestExecutionCallback(Extension):
    __test__ = False

    def after_test_execution(self, context: ExtensionContext) -> None:
        raise NotImplementedError("AfterTestExecutionCallback.after_test_execution must be implemented")


class TestExecutionExceptionHandler(Extension):
    # Return to swallow the failure; raise it (or another exception) to hand it to the next handler.
    __test__ = False

    def handle_test_execution_exception(self, context: ExtensionContext, failure: Exception) -> None:
        raise NotImplementedError("TestExecutionExceptionHandler.handle_test_execution_exception must be implemented")


class LifecycleMethodExecutionExceptionHandler(Extension):
    # Same contract as TestExecutionExceptionHandler; every hook rethrows unless overridden.
    def handle_before_all_method_execution_exception(self, context: ExtensionContext, failure: Exception) -> None:
        raise failure

    def handle_before_each_method_execution_exception(self, context: ExtensionContext, failure: Exception) -> None:
        raise failure

    def handle_after_each_method_execution_exception(self, context: ExtensionContext, failure: Exception) -> None:
        raise failure

    def handle_after_all_method_execution_exception(self, context: ExtensionContext, failure: Exception) -> None:
        raise failure


class TestInstancePreConstructCallback(Extension):
    __test__ = False

    def pre_construct_test_instance(self, factory_context: TestInstanceFactoryContext, context: ExtensionContext) -> None:
        raise NotImplementedError("TestInstancePreConstructCallback.pre_construct_test_instance must be implemented")


class TestInstanceFactory(Extension):
    __test__ = False

    def create_test_instance(self, factory_context: TestInstanceFactoryContext, context: ExtensionContext) -> object:
        raise NotImplementedError("TestInstanceFactory.create_test_instance must be implemented")


class TestInstancePostProcessor(Extension):
    __test__ = False

    def post_process_test_instance(self, instance: object, context: ExtensionContext) -> None:
        raise NotImplementedError("TestInstancePostProcessor.post_process_test_instance must be implemented")


class TestInstancePreDestroyCallback(Extension):
    __test__ = False

    def pre_destroy_test_instance(self, instance: object, context: ExtensionContext) -> None:
        raise NotImplementedError("TestInstancePreDestroyCallback.pre_destroy_test_instance must be implemented")


class ParameterResolver(Extension):
    def supports_parameter(self, parameter: ParameterContext, context: ExtensionContext) -> bool:
        raise NotImplementedError("ParameterResolver.supports_parameter must be implemented")

    def resolve_parameter(self, parameter: ParameterContext, context: ExtensionContext) -> object:
        raise NotImplementedError("ParameterResolver.resolve_parameter must be implemented")


class InvocationInterceptor(Extension):
    # Every hook must call invocation.proceed() exactly once; defaults just proceed.
    def intercept_before_all_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        return invocation.proceed()

    def intercept_before_each_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        return invocation.proceed()

    def intercept_test_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        return invocation.proceed()

    def intercept_after_each_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        return invocation.proceed()

    def intercept_after_all_method(
        self, invocation: Invocation, invocation_context: InvocationContext, context: ExtensionContext
    ) -> Any:
        return invocation.proceed()


class _LifecycleMethodAdapter(Extension):
    # Synthetic registration of a container's before-each/after-each methods.
    def __init__(self, method: LifecycleMethod, test_class: type | None) -> None:
        self.method = method
        self.test_class = test_class

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.method.display_name})"


class BeforeEachMethodAdapter(_LifecycleMethodAdapter):
    pass


class AfterEachMethodAdapter(_LifecycleMethodAdapter):
    pass


class ExtensionRegistry:
    # Per-node registry chained to the parent registry; lookups return outer-to-inner order.
    def __init__(self, parent: ExtensionRegistry | None = None) -> None:
        self._parent = parent
        self._local: list[object] = []

    @property
    def parent(self) -> ExtensionRegistry | None:
        return self._parent

    def register(self, extension: object) -> None:
        if extension is None:
            raise ExtensionConfigurationError("Extension must not be None")
        if isinstance(extension, type):
            raise ExtensionConfigurationError(
                f"Extension must be an instance, not a class: {extension.__qualname__}"
            )
        if any(existing is extension for existing in self._local):
            return
        self._local.append(extension)

    def local_extensions(self, capability: type[T]) -> list[T]:
        return [extension for extension in self._local if isinstance(extension, capability)]

    def get_extensions(self, capability: type[T]) -> list[T]:
        inherited = [] if self._parent is None else self._parent.get_extensions(capability)
        return [*inherited, *self.local_extensions(capability)]

    def get_reversed_extensions(self, capability: type[T]) -> list[T]:
        return list(reversed(self.get_extensions(capability)))

    def resolve_instance_factory(self, test_class: type) -> TestInstanceFactory | None:
        # Innermost registry level that declares any factory wins; two at that level conflict.
        registry: ExtensionRegistry | None = self
        while registry is not None:
            factories = registry.local_extensions(TestInstanceFactory)
            if len(factories) > 1:
                names = ", ".join(_qualified(factory) for factory in factories)
                raise ExtensionConfigurationError(
                    f"The following TestInstanceFactory extensions were registered for test class "
                    f"[{_qualified_class(test_class)}], but only one is permitted: {names}"
                )
            if factories:
                return factories[0]
            registry = registry._parent
        return None


def _qualified(value: object) -> str:
    return _qualified_class(type(value))


def _qualified_class(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"
