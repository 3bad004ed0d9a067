"""Registry of tool adapters with availability probing and selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from taskforge.engine.adapters.base import ToolAdapter
from taskforge.engine.models import ConfigurationError, TaskType, ToolDescriptor
from taskforge.engine.routing import parse_task_type

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolDiscovery:
    """One row of the installed-tools report."""

    descriptor: ToolDescriptor
    available: bool
    version: str | None
    install_hint: str


class ToolRegistry:
    """Owns the configured adapters and answers selection queries.

    Adapters are registered once at startup; afterwards the registry is only
    read, so no locking is needed. Availability is never cached: every query
    probes the tools again.
    """

    def __init__(self, adapters: Iterable[ToolAdapter] = ()) -> None:
        self._adapters: dict[str, ToolAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def register(self, adapter: ToolAdapter) -> None:
        """Add an adapter; names must be unique."""

        descriptor = getattr(adapter, "descriptor", None)
        if not isinstance(descriptor, ToolDescriptor):
            raise ConfigurationError(f"Adapter {adapter!r} has no valid tool descriptor.")
        if descriptor.name in self._adapters:
            raise ConfigurationError(f"Tool {descriptor.name!r} is already registered.")
        self._adapters[descriptor.name] = adapter
        logger.debug(
            "Registered tool %s (priority=%d, capabilities=%s)",
            descriptor.name,
            descriptor.priority,
            ",".join(sorted(item.value for item in descriptor.capabilities)),
        )

    def get(self, name: str) -> ToolAdapter | None:
        """Look up an adapter by name without probing it."""

        return self._adapters.get(name)

    def all(self) -> list[ToolAdapter]:
        """Return every adapter in registration order."""

        return list(self._adapters.values())

    def get_available(self) -> list[ToolDescriptor]:
        """Probe all adapters concurrently and return the available ones.

        The result follows probe completion order, which is not stable.
        """

        return [adapter.descriptor for adapter in self._probe(self.all())]

    def find_best_tool(self, task_type: TaskType | str) -> ToolAdapter | None:
        """Pick the available adapter with the lowest priority for a task type.

        Ties go to the adapter registered first. ``None`` means no available
        tool declares the task type.
        """

        resolved = parse_task_type(task_type)
        order = {name: index for index, name in enumerate(self._adapters)}
        candidates = [
            adapter for adapter in self._adapters.values() if adapter.descriptor.supports(resolved)
        ]
        available = self._probe(candidates)
        if not available:
            logger.info("No available tool supports task type %s", resolved.value)
            return None
        best = min(available, key=lambda item: (item.descriptor.priority, order[item.name]))
        logger.info("Selected %s for task type %s", best.name, resolved.value)
        return best

    def discover(self) -> list[ToolDiscovery]:
        """Report availability, version and install hint for every adapter."""

        available_names = {adapter.name for adapter in self._probe(self.all())}
        report: list[ToolDiscovery] = []
        for adapter in self.all():
            available = adapter.name in available_names
            get_version = getattr(adapter, "get_version", None)
            report.append(
                ToolDiscovery(
                    descriptor=adapter.descriptor,
                    available=available,
                    version=get_version() if available and callable(get_version) else None,
                    install_hint=str(getattr(adapter, "install_hint", "") or ""),
                ),
            )
        return report

    def _probe(self, adapters: list[ToolAdapter]) -> list[ToolAdapter]:
        if not adapters:
            return []
        available: list[ToolAdapter] = []
        with ThreadPoolExecutor(
            max_workers=len(adapters),
            thread_name_prefix="taskforge-probe",
        ) as pool:
            futures = {pool.submit(adapter.check_availability): adapter for adapter in adapters}
            for future in as_completed(futures):
                adapter = futures[future]
                try:
                    is_available = bool(future.result())
                except Exception:  # noqa: BLE001
                    logger.warning("Availability probe for %s raised", adapter.name, exc_info=True)
                    is_available = False
                if is_available:
                    available.append(adapter)
                else:
                    logger.debug("Tool %s is not available", adapter.name)
        return available
