import os

bind = f"0.0.0.0:{int(os.getenv('PORT', '5000'))}"
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
threads = int(os.getenv('GUNICORN_THREADS', '4'))
worker_class = 'gthread'
timeout = int(os.getenv('GUNICORN_TIMEOUT', '120'))
keepalive = 2
accesslog = '-'
errorlog = '-'
loglevel = 'info'
