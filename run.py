# FILE: run.py
# DESCRIPTION: Run the salesdesk application (production entrypoint for Gunicorn).

"""
Entrypoint for the salesdesk application.
Used by Gunicorn to start the app server. Set RUN_SCHEDULER=true on exactly
one process to run the reminder and expiry jobs alongside the web app.
"""

import os

from salesdesk import create_app
from salesdesk.logging_config import configure_logging

# Configure logging first
logger = configure_logging(
    name="salesdesk",
    logfile="salesdesk.log",
    level=None  # Will use LOG_LEVEL from .env if present
)

# Create the Flask application
app = create_app()

if os.environ.get("RUN_SCHEDULER", "").lower() == "true":
    app.extensions["salesdesk"].scheduler.start()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))
