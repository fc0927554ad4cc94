"""
Scheduled scraping job, e.g. daily at 02:00:

    0 2 * * * python -m eventmap.jobs.scrape_events
"""

import logging
import sys

from eventmap.utils.scraper import scrape_all_events

logger = logging.getLogger(__name__)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")
    logger.info("Running scheduled event scraping...")
    try:
        result = scrape_all_events()
    except Exception as e:
        logger.error(f"Scraping failed: {e}")
        return 1

    logger.info(f"Scraping completed: {result['saved']} saved, {result['skipped']} skipped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
