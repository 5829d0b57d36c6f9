"""
Pipeline - Ordered Stages plus Identity and Policy.

A pipeline is assembled by the caller (or by PipelineBuilder from
configuration) and is only read by the orchestrator.
"""

from __future__ import annotations

import uuid
from collections import Counter
from typing import Any, Dict, List, Optional

from etl_orchestrator.config.models import PipelineSettings
from etl_orchestrator.pipeline.stages import Stage


class Pipeline:
    """An ordered list of stages with identity, metadata and settings."""

    def __init__(
        self,
        name: str,
        stages: Optional[List[Stage]] = None,
        description: str = "",
        id: Optional[str] = None,
        settings: Optional[PipelineSettings] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize a pipeline.

        Args:
            name: Display name
            stages: Stages in any order; execution follows Stage.order
            description: Free text
            id: Stable identifier (generated if omitted)
            settings: Error handling, retry and parallelism policy
            metadata: Free-form data (schedule, notifications, tags)
        """
        self.id = id or str(uuid.uuid4())
        self.name = name
        self.description = description
        self.settings = settings or PipelineSettings()
        self.metadata: Dict[str, Any] = metadata or {}
        self._stages: List[Stage] = list(stages or [])

    @property
    def stages(self) -> List[Stage]:
        """Stages in insertion order."""
        return list(self._stages)

    def add_stage(self, stage: Stage) -> Pipeline:
        self._stages.append(stage)
        return self

    def remove_stage(self, name: str) -> bool:
        """Remove a stage by name. Returns False if not found."""
        for i, stage in enumerate(self._stages):
            if stage.name == name:
                del self._stages[i]
                return True
        return False

    def get_stage(self, name: str) -> Optional[Stage]:
        for stage in self._stages:
            if stage.name == name:
                return stage
        return None

    def ordered_stages(self) -> List[Stage]:
        """Stages sorted by ascending order."""
        return sorted(self._stages, key=lambda s: s.order)

    def validate(self) -> List[str]:
        """
        Check that the pipeline is well formed.

        Returns:
            Human-readable issues (empty when valid)
        """
        issues: List[str] = []
        if not self.name:
            issues.append("Pipeline name is required")
        if not self._stages:
            issues.append("Pipeline must have at least one stage")
            return issues

        for order, count in Counter(s.order for s in self._stages).items():
            if count > 1:
                issues.append(f"Stage order {order} is used by {count} stages")
        for name, count in Counter(s.name for s in self._stages).items():
            if count > 1:
                issues.append(f"Stage name '{name}' is used by {count} stages")
        for stage in self._stages:
            if not stage.name:
                issues.append(f"Stage at order {stage.order} has no name")
            if stage.order < 0:
                issues.append(f"Stage '{stage.name}' has negative order {stage.order}")
        if not any(s.enabled for s in self._stages):
            issues.append("Pipeline has no enabled stages")
        return issues

    def __len__(self) -> int:
        return len(self._stages)

    def __repr__(self) -> str:
        return f"Pipeline(name={self.name!r}, stages={len(self._stages)})"
