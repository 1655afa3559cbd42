import argparse

from loguru import logger
from sqlalchemy import create_engine

from price_watch.config import get_settings
from price_watch.db.database import Base, ensure_sqlite_dir
from price_watch.db.job_store import get_job_store
from price_watch.notifications.email import EmailSender
from price_watch.notifications.formatter import compose_report
from price_watch.providers.registry import get_default_registry
from price_watch.scheduler.jobs import process_due_jobs
from price_watch.watcher.fanout import gather_prices

settings = get_settings()


def init_database():
    """初始化資料庫"""
    import price_watch.models  # noqa: F401

    ensure_sqlite_dir(settings.sync_database_url)
    engine = create_engine(settings.sync_database_url)
    Base.metadata.create_all(engine)
    logger.info("Database initialized")


def run_tick():
    """立即執行一次排程檢查"""
    summary = process_due_jobs(get_job_store(), get_default_registry(), EmailSender())
    logger.info(f"Result: {summary}")


def list_providers():
    for name in get_default_registry().names():
        print(name)


def quote(tokens, providers=None, template=""):
    """查詢價格並輸出報告（不寄信）"""
    registry = get_default_registry()
    outcomes = gather_prices(
        registry,
        providers or registry.names(),
        tokens,
        timeout=settings.provider_timeout_seconds,
    )
    print(compose_report(template, outcomes))


def main():
    parser = argparse.ArgumentParser(description="Price Watch CLI")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init command
    subparsers.add_parser("init", help="Initialize database")

    # serve command
    subparsers.add_parser("serve", help="Start API server and scheduler")

    # tick command
    subparsers.add_parser("tick", help="Process due watch jobs once")

    # providers command
    subparsers.add_parser("providers", help="List registered price providers")

    # quote command
    quote_parser = subparsers.add_parser("quote", help="Print a price report without sending")
    quote_parser.add_argument("tokens", nargs="+", help="Token mint addresses")
    quote_parser.add_argument(
        "--provider", "-p", action="append", dest="providers", help="Provider name (repeatable)"
    )
    quote_parser.add_argument("--template", "-t", default="", help="Text placed above the report")

    args = parser.parse_args()

    if args.command == "init":
        init_database()
    elif args.command == "serve":
        import uvicorn

        uvicorn.run(
            "price_watch.main:app",
            host=settings.api_host,
            port=settings.api_port,
            reload=settings.debug,
        )
    elif args.command == "tick":
        run_tick()
    elif args.command == "providers":
        list_providers()
    elif args.command == "quote":
        quote(args.tokens, args.providers, args.template)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
