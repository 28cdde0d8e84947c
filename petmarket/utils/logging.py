"""
petmarket/utils/logging.py
──────────────────────────
Configures structured logging for the billing service.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import has_request_context, request, session


class RequestFormatter(logging.Formatter):
    """
    Injects request info (URL, client IP, employee id) into log records
    when a request context is available.
    """
    def format(self, record):
        if has_request_context():
            record.url = request.url
            record.remote_addr = request.remote_addr
            record.employee_id = session.get('employee_id')
        else:
            record.url = None
            record.remote_addr = None
            record.employee_id = None
        return super().format(record)


def setup_logging(app):
    """
    Configure logging on app.logger ("petmarket"), which service modules
    reach through logging.getLogger(__name__).

    File:   logs/app.log, 5MB × 5 backups (skipped on read-only filesystems)
    Stdout: always on, for container logs
    """
    app.logger.handlers.clear()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
    ))
    stream_handler.setLevel(logging.INFO)
    app.logger.addHandler(stream_handler)

    if not app.testing:
        try:
            log_dir = os.path.join(app.root_path, '..', 'logs')
            os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'app.log'),
                maxBytes=5 * 1024 * 1024,
                backupCount=5
            )
            file_handler.setFormatter(RequestFormatter(
                '%(asctime)s | %(levelname)s | %(name)s | %(remote_addr)s | '
                'emp=%(employee_id)s | %(url)s | %(message)s'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)
        except OSError as exc:
            app.logger.warning(f"File logging disabled: {exc}")

    app.logger.setLevel(logging.INFO)
    app.logger.info("Pet marketplace billing startup")
