"""
scripts/rescore_leads.py — CLI to recompute lead scores.

Usage:
    python scripts/rescore_leads.py              # every non-deleted lead
    python scripts/rescore_leads.py --ids 4 8 15 # only these leads
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
logger = logging.getLogger("rescore_leads")

from app.db.session import get_session
from app.services.scoring_engine import recalculate_all_scores, score_leads


def run(lead_ids: list[int] | None) -> int:
    """Rescore leads; returns the number of leads that failed."""
    with get_session() as db:
        if lead_ids:
            results = score_leads(db, lead_ids)
        else:
            results = recalculate_all_scores(db)

    failed = [r for r in results if "error" in r]
    for r in failed:
        logger.warning("Lead %s not rescored: %s", r["lead_id"], r["error"])
    logger.info("Rescored %d / %d leads.", len(results) - len(failed), len(results))
    return len(failed)


def main() -> None:
    parser = argparse.ArgumentParser(description="Recompute lead scores.")
    parser.add_argument("--ids", type=int, nargs="+", help="Only rescore these lead ids")
    args = parser.parse_args()
    sys.exit(1 if run(args.ids) else 0)


if __name__ == "__main__":
    main()
