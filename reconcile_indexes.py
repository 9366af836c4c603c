import argparse
import os
import sys

# Ensure app package import
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from app import crud
from app.config import get_settings
from app.core.logging import setup_logging
from app.database import create_db_engine, create_session_factory, create_tables


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Report (and optionally repair) appointment index entries that disagree with appointment records."
    )
    parser.add_argument("--fix", action="store_true", help="delete orphaned index entries and restore missing ones")
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings)
    engine = create_db_engine(settings)
    create_tables(engine)

    db = create_session_factory(engine)()
    try:
        store = crud.RecordStore(db)
        if args.fix:
            report = crud.fix_consistency_issues(store)
        else:
            report = crud.run_consistency_checks(store)
        print(report.model_dump_json(indent=2))
    finally:
        db.close()
        engine.dispose()

    if not args.fix and (report.orphaned_index_entries or report.missing_index_entries):
        return 1
    if args.fix and report.errors:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
