"""
Job Runner - Run or Preview a Job Once
======================================

Runs one job outside the web server, for cron or manual operator use:
    python run_job.py daily_review_request --date 2024-06-02 --dry-run
    python run_job.py locker_pickup_reminder --preview
"""

import argparse
import json
import logging
import os
import sys

from pickup_sms.application import (
    JOBS,
    AppContext,
    InvalidAnchorDateError,
    JobRunner,
)
from pickup_sms.infrastructure.config import get_settings
from pickup_sms.infrastructure.persistence import JobAlreadyRunningError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a pickup SMS job once.")
    parser.add_argument("job", choices=sorted(JOBS), help="Job to run")
    parser.add_argument("--date", help="Anchor date YYYY-MM-DD (daily job only); default today")
    parser.add_argument("--dry-run", action="store_true", help="Simulate sends; nothing leaves the process")
    parser.add_argument("--preview", action="store_true", help="Fetch and filter only; print each decision")
    return parser


def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    for issue in settings.validate():
        logger.warning(issue)
    if settings.errors() and not args.preview:
        return 2

    context = AppContext.create(settings)
    runner = JobRunner(context)
    try:
        if args.preview:
            window, decisions = runner.preview(args.job, anchor_date=args.date)
            print(f"\n{args.job}: {window.start.isoformat()} -> {window.end.isoformat()}")
            print("-" * 60)
            for d in decisions:
                c = d.candidate
                extra = " (fallback link)" if d.used_fallback else ""
                print(f"  {c.booking_id:>10}  {d.phone_e164 or c.phone_number or '-':<16}  {d.status.value}{extra}")
            eligible = sum(1 for d in decisions if d.eligible)
            print("-" * 60)
            print(f"  fetched {len(decisions)} | eligible {eligible} | skipped {len(decisions) - eligible}\n")
            return 0

        outcome = runner.run(args.job, anchor_date=args.date, dry_run=args.dry_run)
        print(json.dumps(outcome.to_dict(), indent=2))
        return 0
    except InvalidAnchorDateError as e:
        logger.error(str(e))
        return 2
    except JobAlreadyRunningError as e:
        logger.error(str(e))
        return 3
    finally:
        context.close()


def main():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    sys.exit(run(build_parser().parse_args()))


if __name__ == "__main__":
    main()
