import multiprocessing
import os

# Gunicorn Production Configuration
# Pricing a cart is short CPU work plus one campaign read: one worker per
# core, a few threads each to overlap the DB round trip.
workers = int(os.environ.get('WEB_CONCURRENCY', multiprocessing.cpu_count() + 1))
threads = 4
worker_class = 'gthread'
bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Resilience
timeout = 30
max_requests = 2000
max_requests_jitter = 200
keepalive = 5

# Logging
accesslog = '-'       # Stdout
errorlog = '-'        # Stderr
loglevel = 'info'
capture_output = True
