"""
Orchestration: job queue, retry policy, pipeline bookkeeping and workers.
"""

from .job_queue import JobQueue
from .retry_policy import RetryPolicy, RetryDecision
from .pipeline_service import PipelineService

__all__ = [
    'JobQueue',
    'RetryPolicy',
    'RetryDecision',
    'PipelineService',
]
