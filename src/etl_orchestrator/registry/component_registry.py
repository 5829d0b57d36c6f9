"""
Component Registry - Named Factories for Configurable Pipelines.

This module provides a thread-safe registry that maps the names used in
pipeline configuration to code: connector types to connector factories,
custom stage components to stage-function factories, and transform names
to transforms.

Usage:
    registry = ComponentRegistry()
    registry.register(ComponentKind.SOURCE, "csv", CsvSource.from_config, "1.0.0")
    registry.register(ComponentKind.STAGE, "dedupe", make_dedupe_stage, "1.0.0")

    source = registry.create_source(stage_config.connector)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from etl_orchestrator.adapters.memory_connectors import (
    InMemoryDestinationConnector,
    InMemorySourceConnector,
)
from etl_orchestrator.config.models import ConnectorConfig, StageConfig
from etl_orchestrator.domain.exceptions import ConfigurationError
from etl_orchestrator.interfaces.connectors import DestinationConnector, SourceConnector
from etl_orchestrator.mapping.transforms import TransformRegistry

logger = logging.getLogger(__name__)


class ComponentKind(str, Enum):
    """What a registered factory produces."""

    SOURCE = "SOURCE"
    DESTINATION = "DESTINATION"
    STAGE = "STAGE"


@dataclass
class ComponentInfo:
    """Metadata about a registered component."""

    name: str
    kind: ComponentKind
    factory: Callable[..., Any]
    version: str = "1.0.0"
    description: str = ""
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "kind": self.kind.value,
            "version": self.version,
            "description": self.description,
            "tags": self.tags,
        }


class ComponentRegistry:
    """
    Thread-safe registry of connector and stage factories.

    Supports:
        - Built-in "memory" source and destination connectors
        - Custom connectors keyed by ConnectorConfig.connector_type
        - Custom stage components keyed by StageConfig.component
        - Named transforms for rules and mappings
    """

    def __init__(self, include_builtins: bool = True) -> None:
        """Initialize registry, optionally with the built-in components."""
        self._components: Dict[Tuple[ComponentKind, str], ComponentInfo] = {}
        self._lock = RLock()
        self.transforms = TransformRegistry(include_builtins=include_builtins)
        if include_builtins:
            self.register(
                ComponentKind.SOURCE,
                "memory",
                InMemorySourceConnector.from_config,
                description="List-backed source (settings.records)",
            )
            self.register(
                ComponentKind.DESTINATION,
                "memory",
                InMemoryDestinationConnector.from_config,
                description="List-backed destination",
            )
        logger.debug("ComponentRegistry initialized")

    def register(
        self,
        kind: ComponentKind,
        name: str,
        factory: Callable[..., Any],
        version: str = "1.0.0",
        description: str = "",
        tags: Optional[List[str]] = None,
    ) -> None:
        """
        Register a component factory.

        Args:
            kind: SOURCE / DESTINATION (factory takes ConnectorConfig) or
                STAGE (factory takes StageConfig, returns an async stage function)
            name: Name used in configuration
            factory: Factory callable
            version: Version string for the component
            description: Optional description
            tags: Optional tags for categorization

        Raises:
            ValueError: If a component of this kind and name is already registered
        """
        with self._lock:
            key = (kind, name)
            if key in self._components:
                raise ValueError(
                    f"{kind.value.title()} '{name}' is already registered. "
                    f"Use unregister() first."
                )
            self._components[key] = ComponentInfo(
                name=name,
                kind=kind,
                factory=factory,
                version=version,
                description=description,
                tags=tags or [],
            )
            logger.info(f"Registered {kind.value.lower()} component: {name} v{version}")

    def unregister(self, kind: ComponentKind, name: str) -> bool:
        """
        Unregister a component.

        Returns:
            True if removed, False if not found
        """
        with self._lock:
            if self._components.pop((kind, name), None) is None:
                logger.warning(f"Cannot unregister: {kind.value.lower()} '{name}' not found")
                return False
            logger.info(f"Unregistered {kind.value.lower()} component: {name}")
            return True

    def get(self, kind: ComponentKind, name: str) -> Optional[ComponentInfo]:
        with self._lock:
            return self._components.get((kind, name))

    def list_all(self, kind: Optional[ComponentKind] = None) -> List[ComponentInfo]:
        """Registered components, optionally of one kind."""
        with self._lock:
            return [
                info for (k, _), info in self._components.items()
                if kind is None or k is kind
            ]

    @property
    def registered_count(self) -> int:
        with self._lock:
            return len(self._components)

    def clear(self) -> None:
        """Remove all registered components."""
        with self._lock:
            self._components.clear()
            logger.info("Cleared all components from registry")

    # =========================================================================
    # Factories
    # =========================================================================

    def create_source(self, config: ConnectorConfig) -> SourceConnector:
        return self._create(ComponentKind.SOURCE, config.connector_type, config)

    def create_destination(self, config: ConnectorConfig) -> DestinationConnector:
        return self._create(ComponentKind.DESTINATION, config.connector_type, config)

    def create_stage_function(self, name: str, config: StageConfig) -> Any:
        """Create the async function of a custom stage component."""
        return self._create(ComponentKind.STAGE, name, config)

    def _create(self, kind: ComponentKind, name: str, config: Any) -> Any:
        info = self.get(kind, name)
        if info is None:
            raise ConfigurationError(
                f"No {kind.value.lower()} component registered as '{name}'",
                context={"kind": kind.value, "name": name},
                component="ComponentRegistry",
            )
        try:
            return info.factory(config)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to create {kind.value.lower()} '{name}': {e}",
                context={"kind": kind.value, "name": name},
                component="ComponentRegistry",
            ) from e
