"""
Stage handlers, one module per job type.

Each handler implements handle(JobContext) -> StageResult; see base.py.
"""

from .base import HandlerDeps, JobContext, StageHandler
from .registry import HANDLER_CLASSES, build_handlers

__all__ = [
    'HandlerDeps',
    'JobContext',
    'StageHandler',
    'HANDLER_CLASSES',
    'build_handlers',
]
