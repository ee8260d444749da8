"""Gunicorn configuration for the IP filter service"""
import logging
import os

wsgi_app = 'ipfilter.app:create_app()'


class HealthCheckFilter(logging.Filter):
    """Filter to suppress /health endpoint logs"""
    def filter(self, record):
        return '/health' not in record.getMessage()


def on_starting(server):
    """Attach the health check filter to the access log before workers start."""
    logging.getLogger('gunicorn.access').addFilter(HealthCheckFilter())


bind = f"0.0.0.0:{os.getenv('PORT', '9876')}"
workers = int(os.getenv('WORKERS', '2'))
threads = int(os.getenv('THREADS', '4'))
timeout = 30

# Logging
accesslog = '-'
errorlog = '-'
loglevel = os.getenv('LOG_LEVEL', 'info')

access_log_format = 'INFO: %(h)s "%(r)s" %(s)s %(b)s "%({X-Forwarded-For}i)s" "%({X-Forwarded-Uri}i)s"'
