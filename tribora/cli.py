"""
Command line entry point.

    python -m tribora.cli worker [--size N] [--types transcribe,doc_generate]
    python -m tribora.cli scheduler
    python -m tribora.cli sweep
    python -m tribora.cli stats
    python -m tribora.cli retry <content_id> --org <org_id>
    python -m tribora.cli init-db
"""

import argparse
import json
import signal
import sys
from typing import List, Optional

from tribora.database.session import Database
from tribora.utils.config import load_config
from tribora.utils.error_codes import ContentNotFoundError, ValidationError
from tribora.utils.logger import configure_logging, setup_worker_logger


def _install_shutdown(stop, logger):
    def handle_shutdown_signal(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name} signal, initiating graceful shutdown...")
        stop()
    signal.signal(signal.SIGTERM, handle_shutdown_signal)
    signal.signal(signal.SIGINT, handle_shutdown_signal)


def cmd_worker(args, config, database, logger) -> int:
    from tribora.orchestration.worker import WorkerPool, build_capabilities

    job_types = [t.strip() for t in args.types.split(',')] if args.types else None
    pool = WorkerPool(database.session_factory, config, build_capabilities(config),
                      size=args.size, job_types=job_types)
    _install_shutdown(pool.stop, logger)
    pool.start()
    pool.wait()
    return 0


def cmd_scheduler(args, config, database, logger) -> int:
    from tribora.automation.scheduler import CronScheduler

    scheduler = CronScheduler(database.session_factory, config)
    _install_shutdown(scheduler.stop, logger)
    scheduler.run()
    return 0


def cmd_sweep(args, config, database, logger) -> int:
    from tribora.orchestration.pipeline_service import PipelineService

    session = database.session()
    try:
        count = PipelineService(session, config).reclaim_expired()
    finally:
        session.close()
    print(f"Reclaimed or failed {count} expired job(s)")
    return 0


def cmd_stats(args, config, database, logger) -> int:
    from tribora.orchestration.job_queue import JobQueue

    session = database.session()
    try:
        stats = JobQueue(session, config).stats()
    finally:
        session.close()
    print(json.dumps(stats, indent=2, sort_keys=True))
    return 0


def cmd_retry(args, config, database, logger) -> int:
    from tribora.orchestration.pipeline_service import PipelineService

    try:
        with database.session_scope() as session:
            job = PipelineService(session, config).retry_content(args.content_id, args.org)
            print(f"Enqueued {job.type} (job {job.id}) for {args.content_id}")
    except (ContentNotFoundError, ValidationError) as e:
        print(f"Cannot retry: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_init_db(args, config, database, logger) -> int:
    database.init_db()
    return 0


COMMANDS = {
    'worker': cmd_worker,
    'scheduler': cmd_scheduler,
    'sweep': cmd_sweep,
    'stats': cmd_stats,
    'retry': cmd_retry,
    'init-db': cmd_init_db,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='tribora', description='Content processing pipeline')
    parser.add_argument('--config', help='Path to config.yaml (default: config/config.yaml or $TRIBORA_CONFIG)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    worker = subparsers.add_parser('worker', help='Run a pool of pipeline workers')
    worker.add_argument('--size', type=int, help='Number of worker threads (default: worker.pool_size)')
    worker.add_argument('--types', help='Comma separated job types to claim (default: all)')

    subparsers.add_parser('scheduler', help='Run the cron trigger')
    subparsers.add_parser('sweep', help='Return expired leases to pending once')
    subparsers.add_parser('stats', help='Print queue counts')

    retry = subparsers.add_parser('retry', help='Retry an errored content record')
    retry.add_argument('content_id')
    retry.add_argument('--org', required=True, help='Organization owning the content')

    subparsers.add_parser('init-db', help='Create database tables')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    configure_logging(config)
    logger = setup_worker_logger('cli')
    database = Database(config)
    try:
        return COMMANDS[args.command](args, config, database, logger)
    finally:
        database.dispose()


if __name__ == '__main__':
    sys.exit(main())
