from __future__ import annotations

from pathlib import Path

from lifecycle_kernel.config.loader import load_kernel_config
from lifecycle_kernel.config.models import KernelConfig
from lifecycle_kernel.kernel.listener import ExecutionListener, ExecutionResult
from lifecycle_kernel.kernel.orchestrator import LifecycleOrchestrator
from lifecycle_kernel.kernel.tree import EngineNode
from lifecycle_kernel.observability.adapters.logging import LogSink, build_log_sink
from lifecycle_kernel.observability.logger import configure_logging, current_level, get_logger


def run_engine(
    engine: EngineNode,
    *,
    config: KernelConfig | None = None,
    config_path: Path | None = None,
    listener: ExecutionListener | None = None,
    log_sink: LogSink | None = None,
) -> ExecutionResult:
    # Wire config, logging and the orchestrator for one traversal of the engine tree.
    if config is not None and config_path is not None:
        raise ValueError("Pass either config or config_path, not both")
    if config_path is not None:
        config = load_kernel_config(config_path)
    if config is None:
        config = KernelConfig()

    owned_sink = log_sink is None
    sink = build_log_sink(config.logging.model_dump()) if owned_sink else log_sink
    previous_level = current_level()
    previous = configure_logging(sink, config.logging.level)
    try:
        orchestrator = LifecycleOrchestrator(config, listener, get_logger("lifecycle_kernel.orchestrator"))
        return orchestrator.execute(engine)
    finally:
        configure_logging(previous, previous_level)
        if owned_sink:
            sink.close()
