import multiprocessing
import os

# Gunicorn Production Configuration
# Several workers (and several hosts) draw invoice numbers at once; the
# counter lives in the database, so any worker count is safe.
bind = os.environ.get('GUNICORN_BIND', '0.0.0.0:8000')
workers = int(os.environ.get('WEB_CONCURRENCY', multiprocessing.cpu_count() * 2 + 1))
threads = 2
worker_class = 'gthread'
wsgi_app = 'wsgi:app'

# Resilience
timeout = 60
graceful_timeout = 30
max_requests = 1000
max_requests_jitter = 100

# Logging
accesslog = '-'
errorlog = '-'
loglevel = 'info'
capture_output = True
