"""CLI entrypoint for Zameen Finder."""

import argparse
import sys


def build_run_input(args):
    """Run input from ``--input`` (if given) overridden by explicit flags."""
    from zameen_finder.config import RunInput

    data = RunInput.from_file(args.input).model_dump() if args.input else {}
    if args.url:
        data["start_urls"] = args.url
    for field in ("keyword", "location", "category"):
        value = getattr(args, field)
        if value is not None:
            data[field] = value
    if args.results is not None:
        data["results_wanted"] = args.results
    if args.max_pages is not None:
        data["max_pages"] = args.max_pages
    if args.no_details:
        data["scrape_details"] = False
    return RunInput(**data)


def cmd_scrape(args):
    """Crawl listings and write them to the database or a JSONL file."""
    from zameen_finder.run import ScrapeRun, setup_logging
    from zameen_finder.sinks import DatabaseSink, JsonLinesSink

    setup_logging()

    try:
        run_input = build_run_input(args)
        sink = JsonLinesSink(args.output) if args.output else DatabaseSink()
        result = ScrapeRun(run_input, sink).run()
    except Exception as e:
        print(f"\n✗ Scrape failed: {e}")
        sys.exit(1)

    print(f"\n✓ Scrape complete")
    print(f"  Saved: {result.saved}")
    print(f"  Reserved: {result.reserved}/{result.max_reservations}")
    print(f"  Failed tasks: {result.failed}")
    if sink.skipped:
        print(f"  Invalid records skipped: {sink.skipped}")


def cmd_db(args):
    """Database management commands."""
    from sqlalchemy.orm import Session

    from zameen_finder.db.models import Base, Listing, ScrapeMeta
    from zameen_finder.db.session import _get_default_engine, clear_db

    if args.db_command == "info":
        # Show database connection and table row counts
        engine = _get_default_engine()
        Base.metadata.create_all(bind=engine)
        print(f"Database URL: {engine.url}")
        print(f"Database Type: {engine.dialect.name}")
        print()

        with Session(engine) as session:
            listings = session.query(Listing).count()
            scrape_meta = session.query(ScrapeMeta).count()

            print("Table Row Counts:")
            print(f"  listings: {listings}")
            print(f"  scrape_meta: {scrape_meta}")

    elif args.db_command == "clear":
        # Clear all data from the database
        if not args.yes:
            engine = _get_default_engine()
            print(f"⚠️  WARNING: This will delete ALL data from {engine.url}")
            print("   This operation cannot be undone!")
            response = input("\nAre you sure? Type 'yes' to confirm: ")
            if response.lower() != "yes":
                print("Aborted.")
                sys.exit(0)

        try:
            clear_db()
            print("✓ Database cleared successfully")
        except Exception as e:
            print(f"✗ Failed to clear database: {e}")
            sys.exit(1)

    else:
        print("Usage: zameen-finder db {info,clear}")
        sys.exit(1)


def build_parser():
    parser = argparse.ArgumentParser(description="Zameen Finder: zameen.com listing crawler")
    sub = parser.add_subparsers(dest="command")

    # scrape
    p_scrape = sub.add_parser("scrape", help="Crawl listings from zameen.com")
    p_scrape.add_argument("--url", action="append", help="Start URL (list or detail page); repeatable")
    p_scrape.add_argument("--keyword", default=None, help="Free-text keyword, e.g. 'DHA Phase 2'")
    p_scrape.add_argument("--location", default=None, help="City or area, e.g. 'Islamabad'")
    p_scrape.add_argument("--category", default=None, help="homes, plots, commercial or rentals")
    p_scrape.add_argument("--results", default=None, help="Number of records wanted (non-numeric: no limit)")
    p_scrape.add_argument("--max-pages", type=int, default=None, help="Pages to follow per listing")
    p_scrape.add_argument("--no-details", action="store_true", help="Emit list-page records only")
    p_scrape.add_argument("--input", default=None, help="Run input file (YAML or JSON)")
    p_scrape.add_argument("--output", default=None, help="Write JSON lines here instead of the database")
    p_scrape.set_defaults(func=cmd_scrape)

    # db
    p_db = sub.add_parser("db", help="Database management")
    db_sub = p_db.add_subparsers(dest="db_command")

    db_sub.add_parser("info", help="Show database connection and row counts")

    db_clear = db_sub.add_parser("clear", help="Delete all data from the database")
    db_clear.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Skip confirmation prompt",
    )

    p_db.set_defaults(func=cmd_db)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)
    args.func(args)


if __name__ == "__main__":
    main()
