"""Remote object store backends.

This module provides a registry for storage backends, allowing the
configured store name to select the implementation at runtime.
"""

from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from .base import RemoteStore

from .local import LocalDirectoryStore
from .oss import OSSStore

__all__ = ["StoreRegistry", "create_store"]


class StoreRegistry:
    """Registry for remote store backends.

    This class maps store names (as used in configuration) to the classes
    implementing them.
    """

    _stores: ClassVar[dict[str, type["RemoteStore"]]] = {}

    @classmethod
    def register(cls, name: str, store_class: type["RemoteStore"]) -> None:
        """Register a store backend.

        Args:
            name: Name to register the store under
            store_class: Class that implements RemoteStore
        """
        cls._stores[name] = store_class

    @classmethod
    def get(cls, name: str) -> type["RemoteStore"]:
        """Get a store class by name.

        Args:
            name: Name of the store to retrieve

        Returns:
            Store class

        Raises:
            KeyError: If store name not found
        """
        if name not in cls._stores:
            available = ", ".join(cls._stores.keys()) if cls._stores else "none"
            raise KeyError(f"Store '{name}' not found. Available stores: {available}")
        return cls._stores[name]


def create_store(config) -> "RemoteStore":  # type: ignore[no-untyped-def]
    """Build the store named in the application config.

    Args:
        config: Loaded AppConfig

    Returns:
        Ready-to-use RemoteStore instance

    Raises:
        KeyError: If the configured store name is unknown
    """
    return StoreRegistry.get(config.store).from_config(config)


# Register stores
StoreRegistry.register("oss", OSSStore)
StoreRegistry.register("local", LocalDirectoryStore)
