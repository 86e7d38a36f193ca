"""Check portal access for one or more emails.

    medirate-check-access someone@example.com other@example.com
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from ..config.loader import get_config
from ..database import get_db_context
from ..services.entitlements import EntitlementResolver
from ..services.stripe_client import StripeClient

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="medirate-check-access", description="Resolve MediRate portal access")
    parser.add_argument("emails", nargs="+", help="Emails to check")
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING)

    config = get_config()
    stripe_client = StripeClient(
        config.stripe.secret_key,
        api_base=config.stripe.api_base,
        timeout=config.stripe.timeout_seconds,
    )

    with get_db_context() as db:
        report = EntitlementResolver(db, stripe_client).check_many(args.emails)

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        for result in report["results"]:
            marker = "ACCESS" if result["hasAccess"] else "NO ACCESS"
            print(f"{result['email']}: {marker} ({result['accessReason']})")
        summary = report["summary"]
        print(f"{summary['canAccess']}/{summary['totalChecked']} have access")

    return 0


if __name__ == "__main__":
    sys.exit(main())
