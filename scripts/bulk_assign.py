"""
scripts/bulk_assign.py — CLI to route every unassigned lead of an organization.

Usage:
    python scripts/bulk_assign.py --org 1 [--limit 200]
"""

import argparse
import logging
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("bulk_assign")

from app.db.session import get_session
from app.db.repository import get_unassigned_lead_ids
from app.services.assignment import bulk_assign_leads


def run(org_id: int, limit: int) -> dict:
    with get_session() as db:
        lead_ids = get_unassigned_lead_ids(db, org_id, limit=limit)
        if not lead_ids:
            logger.info("No unassigned leads for org %d.", org_id)
            return {"total": 0, "successful": 0, "failed": 0}
        summary = bulk_assign_leads(db, lead_ids, org_id)

    for error in summary["errors"]:
        logger.warning("Lead %s not assigned: %s", error["lead_id"], error["error"])
    logger.info(
        "Assigned %d / %d leads for org %d.",
        summary["successful"], summary["total"], org_id,
    )
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Assign unassigned leads of an organization.")
    parser.add_argument("--org", type=int, required=True, help="Organization id")
    parser.add_argument("--limit", type=int, default=500, help="Max leads to assign")
    args = parser.parse_args()
    run(args.org, args.limit)


if __name__ == "__main__":
    main()
