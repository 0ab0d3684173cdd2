# Portia gunicorn configuration
# Run with: gunicorn -c deployment/gunicorn/portia.py "portia.app:create_app()"

# Server socket
bind = "127.0.0.1:8030"
backlog = 2048

# Worker processes
# Each worker keeps its own read cache; writes invalidate only their own
workers = 2
worker_class = "sync"
worker_connections = 1000
timeout = 60
keepalive = 2

# Logging
accesslog = "/var/log/gunicorn-portia/access.log"
errorlog = "/var/log/gunicorn-portia/error.log"
loglevel = "info"

# Process naming
proc_name = "portia"

# Server mechanics
daemon = False
pidfile = "/var/run/gunicorn-portia/portia.pid"
umask = 0
user = None
group = None
tmp_upload_dir = None
