import os

# Logging
accesslog = "-"  # Log to stdout
errorlog = "-"   # Log to stderr
loglevel = os.environ.get("LOG_LEVEL", "info").lower()

# Worker configuration
workers = int(os.environ.get("GUNICORN_WORKERS", "3"))
worker_class = "sync"
timeout = 60

# Path handling
forwarded_allow_ips = "*"

# Error handling
capture_output = True
enable_stdio_inheritance = True

# Create logs directory if it doesn't exist
os.makedirs(os.environ.get("LOG_DIR", "logs"), exist_ok=True)
