"""
Pickup SMS - Web Server Entry Point
===================================

Starts the webhook server, operator dashboard and job scheduler:
    python main.py

Then open http://127.0.0.1:4010 in your browser.

To run or preview a job once without the server:
    python run_job.py daily_review_request --dry-run
"""

import logging
import os
import sys

import uvicorn

from pickup_sms.infrastructure.config import get_settings


def main():
    """Validate configuration, then start the web server."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    logger = logging.getLogger(__name__)

    settings = get_settings()
    issues = settings.validate()
    for issue in issues:
        if issue.startswith("ERROR:"):
            logger.error(issue)
        else:
            logger.warning(issue)
    if settings.errors():
        logger.error("Refusing to start with configuration errors")
        sys.exit(1)

    print("\n" + "=" * 50)
    print("   Pickup SMS - Webhooks & Dashboard")
    print("=" * 50)
    print(f"\n   Starting server at http://{settings.web.host}:{settings.web.port}")
    print(f"   Mode: {'DRY RUN' if settings.sms.dry_run else 'LIVE'}")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "pickup_sms.web.app:create_app",
        factory=True,
        host=settings.web.host,
        port=settings.web.port,
        log_level=level.lower(),
    )


if __name__ == "__main__":
    main()
