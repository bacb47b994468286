"""
Tests for JobQueue: enqueue guards, claim ordering and exclusivity,
lease expiry and queue statistics.
"""

from datetime import timedelta

import pytest

from tribora.database.models import Job, utcnow
from tribora.orchestration.job_queue import JobQueue
from tribora.processing.payloads import PayloadError
from tribora.utils.error_codes import LeaseLostError


def content_payload(content_id='c-1', org_id='org-1', **extra):
    payload = {'content_id': content_id, 'org_id': org_id}
    payload.update(extra)
    return payload


class TestEnqueue:
    """Tests for enqueue and its duplicate guards"""

    def test_enqueue_creates_pending_job(self, session, config):
        """New jobs are pending, attempt 1, with configured priority"""
        queue = JobQueue(session, config)
        job = queue.enqueue('transcribe', content_payload(storage_path='org-1/audio/c-1.mp3'))

        assert job.status == 'pending'
        assert job.attempts == 1
        assert job.priority == 0
        assert job.content_id == 'c-1'
        assert job.org_id == 'org-1'
        assert job.payload['storage_path'] == 'org-1/audio/c-1.mp3'

    def test_unknown_priority_uses_default(self, session, config):
        queue = JobQueue(session, {'queue': {'default_priority': 7}})
        job = queue.enqueue('doc_generate', content_payload())
        assert job.priority == 7

    def test_invalid_payload_rejected(self, session, config):
        """Content stages require content_id and org_id"""
        queue = JobQueue(session, config)
        with pytest.raises(PayloadError):
            queue.enqueue('transcribe', {'org_id': 'org-1'})

    def test_second_main_chain_job_skipped(self, session, config):
        """A record never has two active jobs in the main chain"""
        queue = JobQueue(session, config)
        assert queue.enqueue('extract_audio', content_payload()) is not None
        assert queue.enqueue('transcribe', content_payload()) is None
        assert session.query(Job).count() == 1

    def test_frames_chain_independent_of_main_chain(self, session, config):
        queue = JobQueue(session, config)
        assert queue.enqueue('extract_audio', content_payload()) is not None
        assert queue.enqueue('extract_frames', content_payload()) is not None
        assert queue.enqueue('extract_frames', content_payload()) is None

    def test_finished_job_does_not_block(self, session, config):
        queue = JobQueue(session, config)
        first = queue.enqueue('transcribe', content_payload())
        queue.fail(first.id, 'boom', 'timeout')
        assert queue.enqueue('transcribe', content_payload(), attempts=2) is not None

    def test_dedupe_key(self, session, config):
        """Cron jobs are deduplicated by key while active"""
        queue = JobQueue(session, config)
        first = queue.enqueue('collect_metrics', {}, dedupe_key='cron:collect_metrics')
        assert first is not None
        assert queue.enqueue('collect_metrics', {}, dedupe_key='cron:collect_metrics') is None

        queue.complete(first.id, {'organizations': 0})
        assert queue.enqueue('collect_metrics', {}, dedupe_key='cron:collect_metrics') is not None


class TestClaim:
    """Tests for claim_next"""

    def test_claim_marks_processing_with_lease(self, session, config):
        queue = JobQueue(session, config)
        queue.enqueue('transcribe', content_payload())
        session.commit()

        job = queue.claim_next('worker-a')

        assert job.status == 'processing'
        assert job.worker_id == 'worker-a'
        assert job.started_at is not None
        assert job.lease_expires_at > job.started_at

    def test_job_claimed_once(self, session, config):
        """Once claimed, no other worker receives the same job"""
        queue = JobQueue(session, config)
        queue.enqueue('transcribe', content_payload())
        session.commit()

        assert queue.claim_next('worker-a') is not None
        assert queue.claim_next('worker-b') is None

    def test_losing_conditional_update_gets_nothing(self, session, config):
        """Only the first conditional flip of a pending row succeeds"""
        queue = JobQueue(session, config)
        job = queue.enqueue('transcribe', content_payload())
        session.commit()

        assert queue._try_claim(job.id, 'worker-a') is True
        assert queue._try_claim(job.id, 'worker-b') is False
        session.commit()
        session.refresh(job)
        assert job.worker_id == 'worker-a'

    def test_priority_then_age(self, session, config):
        """Lower priority number first, then oldest run_at"""
        queue = JobQueue(session, config)
        now = utcnow()
        older_frames = queue.enqueue('extract_frames', content_payload('c-1'), run_at=now - timedelta(minutes=5))
        late = queue.enqueue('transcribe', content_payload('c-2'), run_at=now - timedelta(minutes=1))
        early = queue.enqueue('transcribe', content_payload('c-3'), run_at=now - timedelta(minutes=2))
        session.commit()

        claimed = [queue.claim_next('w').id for _ in range(3)]
        assert claimed == [early.id, late.id, older_frames.id]

    def test_future_jobs_not_claimed(self, session, config):
        queue = JobQueue(session, config)
        queue.enqueue('transcribe', content_payload(), run_at=utcnow() + timedelta(minutes=10))
        session.commit()
        assert queue.claim_next('w') is None

    def test_claim_filtered_by_type(self, session, config):
        queue = JobQueue(session, config)
        queue.enqueue('transcribe', content_payload('c-1'))
        frames = queue.enqueue('extract_frames', content_payload('c-2'))
        session.commit()

        job = queue.claim_next('w', types=['extract_frames'])
        assert job.id == frames.id


class TestLeases:
    """Tests for heartbeat and reclaim_expired"""

    def test_expired_lease_returns_to_pending(self, session, config):
        """A crashed worker's job becomes claimable again with attempts + 1"""
        queue = JobQueue(session, {'queue': {'lease_seconds': -10}})
        job = queue.enqueue('transcribe', content_payload())
        session.commit()
        queue.claim_next('crashed-worker')

        assert queue.reclaim_expired() == 1
        session.refresh(job)
        assert job.status == 'pending'
        assert job.attempts == 2
        assert job.worker_id is None

        reclaimed = queue.claim_next('worker-b')
        assert reclaimed.id == job.id

    def test_reclaimed_job_cannot_be_settled_by_previous_holder(self, session, config):
        """claim by A → lease expires → reclaimed → claimed by B → A's late settle is refused"""
        queue = JobQueue(session, {'queue': {'lease_seconds': -10}})
        job = queue.enqueue('transcribe', content_payload())
        session.commit()
        queue.claim_next('worker-a')
        queue.reclaim_expired()
        assert queue.claim_next('worker-b').id == job.id

        with pytest.raises(LeaseLostError):
            queue.complete(job.id, {'by': 'a'}, worker_id='worker-a')
        with pytest.raises(LeaseLostError):
            queue.fail(job.id, 'late failure', 'timeout', worker_id='worker-a')
        assert queue.heartbeat(job.id, worker_id='worker-a') is False

        session.expire_all()
        job = session.get(Job, job.id)
        assert job.status == 'processing'
        assert job.worker_id == 'worker-b'
        assert job.result is None

        queue.complete(job.id, {'by': 'b'}, worker_id='worker-b')
        assert job.status == 'completed'
        assert job.result == {'by': 'b'}

    def test_exhausted_leases_fail_instead_of_requeue(self, session, config):
        queue = JobQueue(session, {'queue': {'lease_seconds': -10}})
        job = queue.enqueue('transcribe', content_payload(), attempts=4)
        retryable = queue.enqueue('extract_frames', content_payload(), attempts=3)
        session.commit()
        queue.claim_next('w')
        queue.claim_next('w')

        failed = queue.fail_exhausted_leases(max_retries=3)
        assert [j.id for j in failed] == [job.id]
        assert job.status == 'failed'
        assert job.error_code == 'timeout'

        assert queue.reclaim_expired() == 1
        session.refresh(retryable)
        assert (retryable.status, retryable.attempts) == ('pending', 4)

    def test_live_lease_not_reclaimed(self, session, config):
        queue = JobQueue(session, config)
        queue.enqueue('transcribe', content_payload())
        session.commit()
        queue.claim_next('w')
        assert queue.reclaim_expired() == 0

    def test_heartbeat_only_for_processing(self, session, config):
        queue = JobQueue(session, config)
        job = queue.enqueue('transcribe', content_payload())
        session.commit()
        assert queue.heartbeat(job.id) is False

        queue.claim_next('w')
        assert queue.heartbeat(job.id) is True


class TestQueueReads:
    """Tests for history, last_failed and stats"""

    def test_history_in_creation_order(self, session, config):
        queue = JobQueue(session, config)
        first = queue.enqueue('extract_audio', content_payload())
        queue.complete(first.id, {'audio_path': 'a.mp3'})
        second = queue.enqueue('transcribe', content_payload())
        queue.enqueue('transcribe', content_payload('other'))

        assert [job.id for job in queue.history('c-1')] == [first.id, second.id]

    def test_active_jobs(self, session, config):
        queue = JobQueue(session, config)
        main = queue.enqueue('extract_audio', content_payload())
        frames = queue.enqueue('extract_frames', content_payload())
        queue.complete(main.id)

        assert [job.id for job in queue.active_jobs('c-1')] == [frames.id]

    def test_last_failed_by_type(self, session, config):
        queue = JobQueue(session, config)
        job = queue.enqueue('transcribe', content_payload())
        queue.fail(job.id, 'no speech', 'no_speech_detected')

        failed = queue.last_failed('c-1', types=['transcribe'])
        assert failed.id == job.id
        assert failed.error_code == 'no_speech_detected'
        assert queue.last_failed('c-1', types=['extract_frames']) is None

    def test_stats(self, session, config):
        queue = JobQueue(session, config)
        queue.enqueue('transcribe', content_payload('c-1'))
        queue.enqueue('transcribe', content_payload('c-2'))
        done = queue.enqueue('extract_frames', content_payload('c-1'))
        queue.complete(done.id)

        stats = queue.stats()
        assert stats['by_status'] == {'pending': 2, 'completed': 1}
        assert stats['pending_by_type'] == {'transcribe': 2}
        assert stats['total'] == 3

    def test_complete_unknown_job(self, session, config):
        with pytest.raises(LookupError):
            JobQueue(session, config).complete(9999)
