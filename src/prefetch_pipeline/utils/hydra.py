"""Hydra ConfigStore registration for pipeline components."""

from __future__ import annotations

from typing import Any

from hydra.core.config_store import ConfigStore
from loguru import logger


def register(
    cls: type[Any] | None = None,
    *,
    group: str = "data",
    name: str | None = None,
    **defaults: Any,
) -> type[Any] | Any:
    """Decorator storing a ``_target_`` node for ``cls`` in Hydra's ConfigStore.

    Args:
        cls: The class to register.
        group: ConfigStore group, ``data`` unless given.
        name: Config name; defaults to the class name.
        **defaults: Default keyword arguments placed in the node.
    """

    def _store(target_cls: type[Any]) -> type[Any]:
        config_name = name or target_cls.__name__
        node: dict[str, Any] = {
            "_target_": f"{target_cls.__module__}.{target_cls.__qualname__}",
            **defaults,
        }
        logger.debug(f"Registering {config_name} in group '{group}'")
        ConfigStore.instance().store(group=group, name=config_name, node=node)
        return target_cls

    if cls is None:
        return _store
    return _store(cls)
