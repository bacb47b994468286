"""
State management for the content processing pipeline.

- ContentStatus / VisualIndexingStatus: record statuses for the two chains
- STAGE_PLANS: per content type ordered job chain (data-driven)
- Transition helpers used by the worker supervisor and the retry action
"""

from .pipeline_state import (
    ContentStatus,
    VisualIndexingStatus,
    ContentType,
    Stage,
    STAGE_PLANS,
    FORKED_STAGES,
    TERMINAL_STATUSES,
    TERMINAL_VISUAL_STATUSES,
    STATUS_ORDER,
    stage_plan,
    first_stage,
    next_stage,
    forked_stages,
    status_for_stage,
    can_transition,
    is_terminal,
    chain_for,
    chain_job_types,
)

__all__ = [
    'ContentStatus',
    'VisualIndexingStatus',
    'ContentType',
    'Stage',
    'STAGE_PLANS',
    'FORKED_STAGES',
    'TERMINAL_STATUSES',
    'TERMINAL_VISUAL_STATUSES',
    'STATUS_ORDER',
    'stage_plan',
    'first_stage',
    'next_stage',
    'forked_stages',
    'status_for_stage',
    'can_transition',
    'is_terminal',
    'chain_for',
    'chain_job_types',
]
