"""Registry of feature modules owned by the application.

The registry maps module names to :class:`~otto.module.ModuleDescriptor`
instances. Registration happens once per module, normally before startup;
a second registration under the same name is rejected and logged, keeping the
first instance. Readers take a :meth:`ModuleRegistry.snapshot` and iterate it
without holding the lock, so a handler may register another module without
deadlocking the dispatcher.
"""

from __future__ import annotations

import threading
import typing as typ

from otto.logging import get_logger, log_error, log_info
from otto.module import ModuleDescriptor

if typ.TYPE_CHECKING:
    from otto.module import Module

__all__ = ["ModuleRegistry"]

logger = get_logger(__name__)


class ModuleRegistry:
    """Thread-safe name-to-module mapping with no unregister operation."""

    def __init__(self) -> None:
        """Create an empty registry."""
        self._lock = threading.Lock()
        self._modules: dict[str, ModuleDescriptor] = {}

    def register(self, module: Module | ModuleDescriptor) -> bool:
        """Register *module* under its name.

        Returns
        -------
        bool
            ``True`` when stored, ``False`` when the name was already taken.

        """
        descriptor = ModuleDescriptor.from_module(module)
        with self._lock:
            if descriptor.name in self._modules:
                registered = False
            else:
                self._modules[descriptor.name] = descriptor
                registered = True

        if registered:
            log_info(logger, "module registered name=%s", descriptor.name)
        else:
            log_error(logger, "module registered twice name=%s", descriptor.name)
        return registered

    def snapshot(self) -> dict[str, ModuleDescriptor]:
        """Return an independent copy of the current mapping."""
        with self._lock:
            return dict(self._modules)

    def get(self, name: str) -> ModuleDescriptor | None:
        """Return the descriptor registered as *name*, if any."""
        with self._lock:
            return self._modules.get(name)

    def names(self) -> list[str]:
        """Return registered names in registration order."""
        with self._lock:
            return list(self._modules)

    def __contains__(self, name: object) -> bool:
        """Return whether a module named *name* is registered."""
        with self._lock:
            return name in self._modules

    def __len__(self) -> int:
        """Return the number of registered modules."""
        with self._lock:
            return len(self._modules)
