"""
Lifecycle Events.

Notifications emitted by the orchestrator for external subscribers.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """The four lifecycle notifications."""

    PIPELINE_STARTED = "PIPELINE_STARTED"
    PIPELINE_COMPLETED = "PIPELINE_COMPLETED"
    PIPELINE_FAILED = "PIPELINE_FAILED"
    STAGE_COMPLETED = "STAGE_COMPLETED"


class PipelineEvent(BaseModel):
    """Event envelope: identity plus a type-specific payload."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType
    pipeline_id: str
    execution_id: str
    pipeline_name: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}
