"""
Generate Alerts Step
====================

Scheduled job: compares each organization's latest StorageMetric with the
configured thresholds and records an Alert per breach. A breach already
alerted on since that snapshot is not alerted again.
"""

from typing import List, Optional

from sqlalchemy import select

from tribora.database.models import Alert, StorageMetric
from tribora.processing.payloads import GenerateAlertsPayload
from tribora.processing.results import StageResult

from .base import StageHandler


class GenerateAlertsHandler(StageHandler):
    job_type = 'generate_alerts'
    payload_class = GenerateAlertsPayload

    def __init__(self, deps):
        super().__init__(deps)
        alerts_config = self.config.get('alerts', {})
        self.storage_bytes_threshold = alerts_config.get('storage_bytes_threshold', 50 * 1024 ** 3)
        self.failed_jobs_threshold = alerts_config.get('failed_jobs_threshold', 10)

    def _latest_metric(self, org_id: str) -> Optional[StorageMetric]:
        query = (select(StorageMetric).where(StorageMetric.org_id == org_id)
                 .order_by(StorageMetric.collected_at.desc(), StorageMetric.id.desc()).limit(1))
        return self.deps.session.execute(query).scalars().first()

    def _org_ids(self, payload: GenerateAlertsPayload) -> List[str]:
        if payload.org_id:
            return [payload.org_id]
        query = select(StorageMetric.org_id).distinct().order_by(StorageMetric.org_id)
        return list(self.deps.session.execute(query).scalars().all())

    def _already_alerted(self, metric: StorageMetric, alert_type: str) -> bool:
        query = select(Alert.id).where(
            Alert.org_id == metric.org_id,
            Alert.alert_type == alert_type,
            Alert.created_at >= metric.collected_at,
        ).limit(1)
        return self.deps.session.execute(query).first() is not None

    def process(self, payload: GenerateAlertsPayload, ctx) -> StageResult:
        created = 0
        for org_id in self._org_ids(payload):
            metric = self._latest_metric(org_id)
            if metric is None:
                continue

            breaches = []
            if metric.total_bytes > self.storage_bytes_threshold:
                breaches.append((
                    'storage_threshold', 'warning', metric.total_bytes, self.storage_bytes_threshold,
                    f"Storage usage {metric.total_bytes / 1024 ** 3:.1f} GB exceeds "
                    f"{self.storage_bytes_threshold / 1024 ** 3:.1f} GB",
                ))
            if metric.failed_jobs >= self.failed_jobs_threshold:
                severity = 'critical' if metric.failed_jobs >= 2 * self.failed_jobs_threshold else 'warning'
                breaches.append((
                    'failed_jobs', severity, metric.failed_jobs, self.failed_jobs_threshold,
                    f"{metric.failed_jobs} failed jobs in the metrics window",
                ))

            for alert_type, severity, value, threshold, message in breaches:
                if self._already_alerted(metric, alert_type):
                    continue
                self.deps.session.add(Alert(
                    org_id=org_id, alert_type=alert_type, severity=severity,
                    message=message, value=value, threshold=threshold,
                ))
                created += 1
                self.logger.warning(f"Alert for {org_id}: {message}")

        self.deps.session.flush()
        return StageResult.ok({'alerts_created': created})
