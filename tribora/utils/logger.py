import logging
from logging import handlers
from pathlib import Path
import socket
from typing import Optional, Dict, Any
import os
from datetime import datetime, timezone
import sys
import gzip

# Cache for loggers to avoid duplicate creation
_logger_cache: Dict[str, logging.Logger] = {}

# Set by configure_logging(); None means console only
_log_dir: Optional[Path] = None
_log_level = logging.INFO


def get_worker_name() -> str:
    """Get the worker name from WORKER_ID or the hostname."""
    worker_id = os.environ.get('WORKER_ID')
    if worker_id:
        return worker_id
    try:
        return socket.gethostname()
    except OSError:
        return "unknown-worker"


def configure_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """Apply the `logging` config section (base_path, level) for later loggers."""
    global _log_dir, _log_level
    logging_config = (config or {}).get('logging') or {}
    base_path = logging_config.get('base_path')
    _log_dir = Path(base_path) if base_path else None
    _log_level = getattr(logging, str(logging_config.get('level', 'INFO')).upper(), logging.INFO)
    _logger_cache.clear()


class RotatingFileHandlerWithCompression(handlers.RotatingFileHandler):
    """Rotating file handler that compresses old log files"""
    def doRollover(self):
        if self.stream:
            self.stream.close()
            self.stream = None
        if self.backupCount > 0:
            for i in range(self.backupCount - 1, 0, -1):
                sfn = self.rotation_filename("%s.%d.gz" % (self.baseFilename, i))
                dfn = self.rotation_filename("%s.%d.gz" % (self.baseFilename, i + 1))
                if os.path.exists(sfn):
                    if os.path.exists(dfn):
                        os.remove(dfn)
                    os.rename(sfn, dfn)
            dfn = self.rotation_filename(self.baseFilename + ".1.gz")
            if os.path.exists(dfn):
                os.remove(dfn)
            with open(self.baseFilename, 'rb') as f_in:
                with gzip.open(dfn, 'wb') as f_out:
                    f_out.writelines(f_in)
        self.mode = 'w'
        self.stream = self._open()


class WorkerLogFormatter(logging.Formatter):
    """Formatter for detailed worker-level logs (debug/info messages for troubleshooting)"""
    def format(self, record):
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
        logger_name = record.name.split('.')[-1] if '.' in record.name else record.name
        message = f"{timestamp} [{get_worker_name()}.{logger_name}] [{record.levelname}] {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


class TaskLogFormatter(logging.Formatter):
    """Formatter for task-level events (job completions and failures)"""
    def format(self, record):
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
        if hasattr(record, 'task_event'):
            job_type = getattr(record, 'job_type', 'unknown')
            content_id = getattr(record, 'content_id', None) or 'none'
            duration = getattr(record, 'duration', 0.0)
            worker_id = getattr(record, 'worker_id', get_worker_name())
            return f"{timestamp} [{worker_id}] [{job_type}] {record.getMessage()}: {content_id} ({duration:.1f}s)"
        return f"{timestamp} [{get_worker_name()}] {record.getMessage()}"


def setup_worker_logger(worker_type: str) -> logging.Logger:
    """Set up worker-level logger for detailed debug/info messages

    Args:
        worker_type: Type of worker (e.g. 'transcribe', 'job_queue')
    """
    if not worker_type.startswith('worker.'):
        worker_type = f"worker.{worker_type}"
    logger_name = f"tribora.{worker_type}"

    if logger_name in _logger_cache:
        return _logger_cache[logger_name]

    logger = logging.getLogger(logger_name)
    logger.setLevel(_log_level)
    logger.propagate = False

    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    if _log_dir is not None:
        try:
            worker_log_dir = _log_dir / get_worker_name()
            worker_log_dir.mkdir(parents=True, exist_ok=True)
            log_file_name = f"{get_worker_name()}_{worker_type.replace('worker.', '')}.log"
            fh = RotatingFileHandlerWithCompression(
                str(worker_log_dir / log_file_name),
                maxBytes=10*1024*1024,
                backupCount=5
            )
            fh.setFormatter(WorkerLogFormatter())
            logger.addHandler(fh)
        except OSError as e:
            print(f"Warning: Could not create log file under {_log_dir}: {e}", file=sys.stderr)

    ch = logging.StreamHandler()
    ch.setFormatter(WorkerLogFormatter())
    ch.setLevel(logging.WARNING if _log_dir is not None else _log_level)
    logger.addHandler(ch)

    _logger_cache[logger_name] = logger
    return logger


class TaskLogger:
    """Handles job completion/error event lines"""

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        self.logger = logging.getLogger('tribora.task_events')
        if not self.logger.handlers:
            ch = logging.StreamHandler()
            ch.setFormatter(TaskLogFormatter())
            self.logger.addHandler(ch)
            self.logger.setLevel(logging.INFO)
            self.logger.propagate = False

    def log_completion(self, job_type: str, content_id: Optional[str], time_taken: float = 0.0):
        self.logger.info("Job completed", extra={
            'task_event': True, 'job_type': job_type, 'content_id': content_id,
            'duration': time_taken, 'worker_id': self.worker_id,
        })

    def log_error(self, job_type: str, content_id: Optional[str], error_details: str,
                  time_taken: float = 0.0):
        self.logger.error(f"Job error ({error_details})", extra={
            'task_event': True, 'job_type': job_type, 'content_id': content_id,
            'duration': time_taken, 'worker_id': self.worker_id,
        })
