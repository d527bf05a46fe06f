#!/usr/bin/env python3
"""
Persist the 'overdue' status on unpaid credits that are past due.

API reads derive 'overdue' on their own, so this only keeps the stored column
tidy for reporting. Safe to run repeatedly (e.g. from cron).
"""
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from breakfast_api.core.database import SessionLocal
from breakfast_api.core.log_config import configure_logging
from breakfast_api.services.credit_service import sweep_overdue


def main() -> int:
    configure_logging()
    with SessionLocal() as db:
        marked = sweep_overdue(db)
    logging.getLogger("breakfast_api.sweep").info("done, %s credits marked overdue", marked)
    return 0


if __name__ == '__main__':
    sys.exit(main())
