"""
ETL Orchestrator - Configurable Extract/Transform/Load Pipeline Engine.

Models a data-integration workflow as an ordered sequence of stages and
executes it under a configurable error/retry policy. Records flowing
through Transform stages are mutated by a cascading rule engine and
reshaped by a declarative field mapper.

Architecture:
    - Hexagonal Architecture (Ports & Adapters)
    - Dependency Injection for testability
    - Polymorphic stages communicating via a typed context
    - Configuration-driven pipelines via YAML

Main Components:
    - domain: Core entities (DataRecord, results, exceptions)
    - interfaces: Abstract protocols for connectors and observers
    - pipeline: Stages, pipeline model and the orchestrator
    - rules: Priority-ordered rule engine
    - mapping: Field mapping / projection
    - resilience: Retry policy and error classification
    - adapters: Infrastructure implementations (connectors, loggers)
    - config: Configuration models and loaders
    - registry: Component registry and config-driven pipeline builder

Example:
    >>> from etl_orchestrator.config.loader import load_config
    >>> from etl_orchestrator.registry import PipelineBuilder
    >>> from etl_orchestrator.pipeline import Orchestrator
    >>> pipeline = PipelineBuilder().build(load_config("pipelines/orders.yaml"))
    >>> result = asyncio.run(Orchestrator().execute(pipeline))
    >>> print(f"Processed {result.records_processed} records")

"""

import logging

__version__ = "0.4.0"


def configure_logging(
    level: int = logging.INFO,
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
) -> None:
    """
    Configure logging for the ETL orchestrator.

    Call this at application startup to see log messages.
    By default, only WARNING and above are visible.

    Args:
        level: Logging level (default: INFO)
        format: Log message format

    Example:
        >>> import etl_orchestrator
        >>> etl_orchestrator.configure_logging(logging.DEBUG)
    """
    logging.basicConfig(
        level=level,
        format=format,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("etl_orchestrator").setLevel(level)
