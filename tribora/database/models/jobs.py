"""
Job queue model for the background processing system.

Contains:
- Job: Durable work item claimed and executed by pipeline workers
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Index, JSON, text

from .base import Base, utcnow


class Job(Base):
    """
    Durable work queue entry.

    Jobs represent one stage of work (extract_audio, transcribe, ...) or a
    scheduled maintenance run (collect_metrics, generate_alerts). Workers
    claim due pending jobs; exactly one claimer wins.

    Attributes:
        id: Primary key
        type: Job type (stage name)
        status: 'pending', 'processing', 'completed', 'failed'
        payload: JSON payload; shape depends on type (see processing.payloads)
        content_id: Target Content (NULL for org-wide/cron jobs)
        org_id: Organization the job belongs to (NULL for global cron jobs)
        priority: 0 = critical ... 3 = low; lower runs first
        run_at: Earliest dispatch time (scheduling and retry backoff)
        attempts: 1-based attempt number of this job row
        dedupe_key: Optional key; at most one active job per key
        worker_id: Worker currently holding the job
        lease_expires_at: Claim lease; an expired lease makes the job re-claimable
        last_heartbeat: Last heartbeat from the processing worker
        error / error_code: Failure details
        result: JSON result data from the handler

    Task Lifecycle:
        1. Created as 'pending' by intake or by the previous stage's success
        2. Worker claims it, status -> 'processing', lease set
        3. Worker heartbeats extend the lease during long stages
        4. On success: status -> 'completed', next stage enqueued in the same transaction
        5. On failure: status -> 'failed'; the retry policy may enqueue a new pending row
    """
    __tablename__ = 'jobs'

    id = Column(Integer, primary_key=True)
    type = Column(String(50), nullable=False)
    status = Column(String(20), default='pending', nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    content_id = Column(String(36), nullable=True)
    org_id = Column(String(64), nullable=True)
    priority = Column(Integer, default=2, nullable=False)
    run_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    attempts = Column(Integer, default=1, nullable=False)
    dedupe_key = Column(String(255), nullable=True)

    worker_id = Column(String(100), nullable=True)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)
    last_heartbeat = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    error = Column(Text, nullable=True)
    error_code = Column(String(50), nullable=True)
    result = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_jobs_status', 'status'),
        Index('idx_jobs_content_id', 'content_id'),
        Index('idx_jobs_dedupe_key', 'dedupe_key'),
        # Claim path: due pending jobs by priority
        Index('idx_jobs_claim', 'status', 'priority', 'run_at', 'created_at',
              postgresql_where=text("status = 'pending'")),
    )

    def __repr__(self):
        return f"<Job(id={self.id}, type={self.type}, status={self.status}, attempts={self.attempts})>"
