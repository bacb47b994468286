"""
Operational models written by the scheduled maintenance jobs.

Contains:
- StorageMetric: Per-organization usage snapshot (collect_metrics)
- Alert: Threshold breach raised from the latest snapshot (generate_alerts)
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Index, BigInteger, JSON

from .base import Base, utcnow


class StorageMetric(Base):
    """Usage snapshot for one organization."""
    __tablename__ = 'storage_metrics'

    id = Column(Integer, primary_key=True)
    org_id = Column(String(64), nullable=False)
    content_count = Column(Integer, nullable=False, default=0)
    total_bytes = Column(BigInteger, nullable=False, default=0)
    by_content_type = Column(JSON, default=dict)
    by_status = Column(JSON, default=dict)
    failed_jobs = Column(Integer, nullable=False, default=0)
    collected_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_storage_metrics_org_collected', 'org_id', 'collected_at'),
    )


class Alert(Base):
    """Threshold breach for an organization."""
    __tablename__ = 'alerts'

    id = Column(Integer, primary_key=True)
    org_id = Column(String(64), nullable=False)
    alert_type = Column(String(50), nullable=False)  # 'storage_threshold' | 'failed_jobs'
    severity = Column(String(20), nullable=False, default='warning')
    message = Column(Text, nullable=False)
    value = Column(BigInteger, nullable=True)
    threshold = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_alerts_org_created', 'org_id', 'created_at'),
    )
