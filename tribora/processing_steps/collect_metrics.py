"""
Collect Metrics Step
====================

Scheduled job: writes one StorageMetric snapshot per organization (content
count, stored bytes, counts per content type and status, failed jobs in
the metrics window).
"""

from datetime import timedelta
from typing import List

from sqlalchemy import select, func

from tribora.database.models import Content, Job, StorageMetric, utcnow
from tribora.processing.payloads import CollectMetricsPayload
from tribora.processing.results import StageResult

from .base import StageHandler


class CollectMetricsHandler(StageHandler):
    job_type = 'collect_metrics'
    payload_class = CollectMetricsPayload

    def __init__(self, deps):
        super().__init__(deps)
        self.window_hours = self.config.get('alerts', {}).get('metrics_window_hours', 24)

    def _org_ids(self, payload: CollectMetricsPayload) -> List[str]:
        if payload.org_id:
            return [payload.org_id]
        query = select(Content.org_id).where(Content.deleted_at.is_(None)).distinct().order_by(Content.org_id)
        return list(self.deps.session.execute(query).scalars().all())

    def process(self, payload: CollectMetricsPayload, ctx) -> StageResult:
        session = self.deps.session
        cutoff = utcnow() - timedelta(hours=self.window_hours)
        org_ids = self._org_ids(payload)

        for org_id in org_ids:
            live = [Content.org_id == org_id, Content.deleted_at.is_(None)]
            count, total_bytes = session.execute(
                select(func.count(Content.id), func.coalesce(func.sum(Content.file_size), 0)).where(*live)
            ).one()
            by_type = dict(session.execute(
                select(Content.content_type, func.count(Content.id)).where(*live).group_by(Content.content_type)
            ).all())
            by_status = dict(session.execute(
                select(Content.status, func.count(Content.id)).where(*live).group_by(Content.status)
            ).all())
            failed_jobs = session.execute(
                select(func.count(Job.id)).where(
                    Job.org_id == org_id, Job.status == 'failed', Job.completed_at >= cutoff)
            ).scalar_one()

            session.add(StorageMetric(
                org_id=org_id,
                content_count=count,
                total_bytes=int(total_bytes),
                by_content_type=by_type,
                by_status=by_status,
                failed_jobs=failed_jobs,
            ))
        session.flush()
        self.logger.info(f"Collected metrics for {len(org_ids)} organization(s)")
        return StageResult.ok({'organizations': len(org_ids)})
