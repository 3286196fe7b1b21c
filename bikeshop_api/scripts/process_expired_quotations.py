# bikeshop_api/scripts/process_expired_quotations.py
# Expire stale quotations. Meant to be run from cron:
#   bikeshop-expire-quotations
# Exits non-zero only when the sweep itself cannot run.

import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from ..app import create_app
from ..models import db
from ..services.expiration import run_expiration_sweep

logger = logging.getLogger(__name__)


def main(app=None):
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s')
    app = app or create_app()

    with app.app_context():
        logger.info("Starting expired quotations processing...")
        try:
            result = run_expiration_sweep()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to process expired quotations: {e}")
            return 1
        finally:
            db.session.remove()

    logger.info(f"Processed {result.processed} expired quotations")
    if result.errors:
        logger.error("Errors encountered:")
        for index, error in enumerate(result.errors, start=1):
            logger.error(f"{index}. {error}")

    logger.info("Expired quotations processing completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
