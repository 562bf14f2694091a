"""Dependency ordering of firmware modules.

Modules declare up to two dependencies (function, index, minimum
version) in their prefix. Modules are ordered so that every dependency
present in the set is flashed before the modules that need it.
"""

import logging

from devflash.modules.models import ModuleDependency, ModuleDescriptor

logger = logging.getLogger(__name__)


class DependencyCycleError(Exception):
    """The module set contains a dependency cycle."""

    def __init__(self, filenames: list[str]) -> None:
        names = ", ".join(filenames)
        super().__init__(
            f"Circular dependency between modules: {names}. "
            "The module set is corrupt."
        )
        self.message = str(self)
        self.error_code = "DEPENDENCY_CYCLE"
        self.filenames = filenames


def _satisfies(module: ModuleDescriptor, dependency: ModuleDependency) -> bool:
    prefix = module.prefix_info
    return (
        prefix.module_function == dependency.module_function
        and prefix.module_index == dependency.module_index
    )


def _dependency_edges(modules: list[ModuleDescriptor]) -> list[set[int]]:
    """For each module, the positions of the modules it depends on."""
    edges: list[set[int]] = []
    for position, module in enumerate(modules):
        required: set[int] = set()
        for dependency in module.prefix_info.dependencies:
            for other_position, other in enumerate(modules):
                if other_position == position or not _satisfies(other, dependency):
                    continue
                if other.prefix_info.module_version < dependency.module_version:
                    logger.warning(
                        "%s requires version %d of %s but version %d is being flashed",
                        module.name,
                        dependency.module_version,
                        other.name,
                        other.prefix_info.module_version,
                    )
                required.add(other_position)
        edges.append(required)
    return edges


def order_by_dependency(modules: list[ModuleDescriptor]) -> list[ModuleDescriptor]:
    """Order modules so dependencies come before their dependents.

    Dependencies on modules absent from the input are ignored. Modules
    with no ordering constraint between them keep their input order.
    The input list is not modified.

    Args:
        modules: Modules to order.

    Returns:
        New list with the modules in flashing order.

    Raises:
        DependencyCycleError: The dependencies contain a cycle.
    """
    edges = _dependency_edges(modules)
    emitted: list[int] = []
    done: set[int] = set()

    while len(emitted) < len(modules):
        ready = next(
            (
                position
                for position in range(len(modules))
                if position not in done and edges[position] <= done
            ),
            None,
        )
        if ready is None:
            stuck = [modules[p].name for p in range(len(modules)) if p not in done]
            logger.error("Dependency cycle among: %s", stuck)
            raise DependencyCycleError(stuck)
        emitted.append(ready)
        done.add(ready)

    ordered = [modules[p] for p in emitted]
    logger.debug("Dependency order: %s", [m.name for m in ordered])
    return ordered


__all__ = ["DependencyCycleError", "order_by_dependency"]
