"""
Command Line Interface for the photo ingestion pipeline.
"""

import argparse
import asyncio
import json
import logging
from datetime import date, datetime, time, timezone
from typing import List, Optional, Sequence, Tuple, Union

import urllib3

from .batch_progress import BatchProgress
from .batch_uploader import DEFAULT_CONCURRENCY, BatchUploader, files_to_items
from .db_config import DbConfig
from .http_transport import DEFAULT_TIMEOUT, HttpTransport
from .optimizer import OptimizeResult
from .photo_db import PhotoDb
from .photo_record import FULL_PREFIX
from .photo_service import PhotoService, build_service
from .s3_config import S3Config


def setup_logging(verbose: bool) -> logging.Logger:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    return logging.getLogger('photopipe')


def get_s3_config(args: argparse.Namespace) -> S3Config:
    """Get S3 configuration from environment and CLI overrides."""
    config = S3Config.from_env()

    if getattr(args, 's3_endpoint', None):
        config.endpoint = args.s3_endpoint
    if getattr(args, 's3_bucket', None):
        config.bucket = args.s3_bucket
    if getattr(args, 's3_access_key', None):
        config.access_key = args.s3_access_key
    if getattr(args, 's3_secret_key', None):
        config.secret_key = args.s3_secret_key

    return config


def get_db_config(args: argparse.Namespace) -> DbConfig:
    """Get database configuration from environment and CLI overrides."""
    config = DbConfig.from_env()

    if getattr(args, 'db_host', None):
        config.host = args.db_host
    if getattr(args, 'db_port', None):
        config.port = args.db_port
    if getattr(args, 'db_name', None):
        config.database = args.db_name
    if getattr(args, 'db_user', None):
        config.user = args.db_user

    return config


def validate_configs(logger: logging.Logger, *configs: Union[S3Config, DbConfig]) -> bool:
    errors = [error for config in configs for error in config.validate()]
    for error in errors:
        logger.error(error)
    return not errors


def get_service(args: argparse.Namespace, logger: logging.Logger) -> PhotoService:
    """
    Build the service from configuration.

    Raises:
        ValueError: Configuration is invalid
    """
    s3_config = get_s3_config(args)
    db_config = get_db_config(args)
    if not validate_configs(logger, s3_config, db_config):
        raise ValueError("Configuration invalid")
    if not s3_config.verify_ssl:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    return build_service(s3_config, db_config, logger)


def add_storage_arguments(parser: argparse.ArgumentParser) -> None:
    """Add storage and database configuration arguments to a parser."""
    s3_group = parser.add_argument_group('S3 Storage')
    s3_group.add_argument('--s3-endpoint', help='Override S3_ENDPOINT')
    s3_group.add_argument('--s3-bucket', help='Override S3_BUCKET')
    s3_group.add_argument('--s3-access-key', help='Override S3_ACCESS_KEY')
    s3_group.add_argument('--s3-secret-key', help='Override S3_SECRET_KEY')

    db_group = parser.add_argument_group('Database')
    db_group.add_argument('--db-host', help='Override SQL_HOST')
    db_group.add_argument('--db-port', type=int, help='Override SQL_PORT')
    db_group.add_argument('--db-name', help='Override SQL_DATABASE')
    db_group.add_argument('--db-user', help='Override SQL_USER')


def parse_date(value: str, end_of_day: bool = False) -> datetime:
    """Parse an ISO date or datetime; naive values are taken as UTC."""
    try:
        day = date.fromisoformat(value)
    except ValueError:
        pass
    else:
        return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_end_date(value: str) -> datetime:
    """Like parse_date, but a bare date means the end of that day."""
    return parse_date(value, end_of_day=True)


async def optimize_keys(
    service: PhotoService,
    keys: Sequence[str],
    concurrency: int = DEFAULT_CONCURRENCY
) -> List[Tuple[str, Union[OptimizeResult, Exception]]]:
    """Optimize several keys with bounded concurrency, collecting failures."""
    semaphore = asyncio.Semaphore(concurrency)

    async def run(key: str):
        async with semaphore:
            try:
                return key, await service.optimize(key)
            except Exception as e:
                return key, e

    return list(await asyncio.gather(*(run(key) for key in keys)))


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create database tables."""
    logger = setup_logging(args.verbose)
    db_config = get_db_config(args)
    if not validate_configs(logger, db_config):
        return 1

    try:
        PhotoDb(db_config, logger).create_tables()
    except Exception as e:
        logger.exception(f"Creating tables failed: {e}")
        return 1
    logger.info("Tables ready")
    return 0


def cmd_upload(args: argparse.Namespace) -> int:
    """Upload local files, create records and optimize them."""
    logger = setup_logging(args.verbose)

    try:
        service = get_service(args, logger)
    except ValueError:
        return 1

    try:
        items = files_to_items(args.files)
    except OSError as e:
        logger.error(f"Cannot read input file: {e}")
        return 1

    progress = None
    if not args.quiet:
        progress = BatchProgress(show_files=args.show_files, logger=logger)

    uploader = BatchUploader(
        service,
        transport=HttpTransport(timeout=args.timeout),
        concurrency=args.concurrency,
        prefix=args.prefix,
        progress=progress,
        logger=logger,
    )
    stats = asyncio.run(uploader.run(items))

    if stats.errors:
        for detail in stats.error_details:
            logger.error(f"  {detail}")
        return 1
    return 0


def cmd_optimize(args: argparse.Namespace) -> int:
    """Re-run optimization for keys already in the store."""
    logger = setup_logging(args.verbose)

    try:
        service = get_service(args, logger)
    except ValueError:
        return 1

    results = asyncio.run(optimize_keys(service, args.keys, args.concurrency))
    failed = 0
    for key, outcome in results:
        if isinstance(outcome, Exception):
            failed += 1
            print(f"  [ERROR] {key} -> {outcome}")
        else:
            print(
                f"  [OK] {key} -> {outcome.pk} "
                f"(thumbnail {outcome.thumbnail_size} bytes, gallery {outcome.gallery_size} bytes)"
            )
    return 1 if failed else 0


def cmd_list(args: argparse.Namespace) -> int:
    """List gallery-ready photos."""
    logger = setup_logging(args.verbose)

    try:
        service = get_service(args, logger)
        photos = asyncio.run(service.list_ready_photos(
            tags=args.tag,
            date_from=args.date_from,
            date_to=args.date_to,
            order=args.order,
            random=args.random,
            limit=args.limit,
        ))
    except ValueError as e:
        logger.error(str(e))
        return 1

    if args.json:
        print(json.dumps(photos, indent=2, default=str))
        return 0

    for photo in photos:
        camera = photo.get('camera') or '-'
        print(f"{photo['pk']}  {photo['original_created_at']}  {photo['full_key']}  {camera}")
    print(f"{len(photos)} photos")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete photos by pk."""
    logger = setup_logging(args.verbose)

    try:
        service = get_service(args, logger)
    except ValueError:
        return 1

    result = asyncio.run(service.delete_photos(args.pks))
    print(f"Deleted {result['deleted']} photos, {len(result['keys'])} objects")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog='photopipe',
        description='Photo ingestion and optimization pipeline',
    )
    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    init_parser = subparsers.add_parser('init-db', help='Create database tables')
    init_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_storage_arguments(init_parser)

    upload_parser = subparsers.add_parser('upload', help='Upload and optimize local files')
    upload_parser.add_argument('files', nargs='+', help='Image files to upload')
    upload_parser.add_argument('-p', '--prefix', default=FULL_PREFIX,
                               help=f'Key prefix for raw uploads (default: {FULL_PREFIX})')
    upload_parser.add_argument('-c', '--concurrency', type=int, default=DEFAULT_CONCURRENCY,
                               help=f'Items in flight at once (default: {DEFAULT_CONCURRENCY})')
    upload_parser.add_argument('--timeout', type=float, default=DEFAULT_TIMEOUT,
                               help='Upload request timeout in seconds')
    upload_parser.add_argument('-q', '--quiet', action='store_true', help='Suppress progress output')
    upload_parser.add_argument('--show-files', action='store_true',
                               help='Print every status change of every file')
    upload_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_storage_arguments(upload_parser)

    optimize_parser = subparsers.add_parser('optimize', help='Optimize raw uploads already in the store')
    optimize_parser.add_argument('keys', nargs='+', help='Raw upload keys (e.g. full/IMG_0001.jpg)')
    optimize_parser.add_argument('-c', '--concurrency', type=int, default=DEFAULT_CONCURRENCY,
                                 help=f'Keys in flight at once (default: {DEFAULT_CONCURRENCY})')
    optimize_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_storage_arguments(optimize_parser)

    list_parser = subparsers.add_parser('list', help='List gallery-ready photos')
    list_parser.add_argument('--tag', action='append', help='Tag pk(s); any match')
    list_parser.add_argument('--from', dest='date_from', type=parse_date, help='Captured on or after')
    list_parser.add_argument('--to', dest='date_to', type=parse_end_date, help='Captured on or before')
    list_parser.add_argument('--order', choices=['asc', 'desc'], default='desc', help='Order by capture time')
    list_parser.add_argument('--random', action='store_true', help='Random order')
    list_parser.add_argument('--limit', type=int, metavar='N', help='Limit to N photos')
    list_parser.add_argument('--json', action='store_true', help='Print JSON')
    list_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_storage_arguments(list_parser)

    delete_parser = subparsers.add_parser('delete', help='Delete photos and their objects')
    delete_parser.add_argument('pks', nargs='+', help='Photo pks')
    delete_parser.add_argument('-v', '--verbose', action='store_true', help='Enable verbose logging')
    add_storage_arguments(delete_parser)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    commands = {
        'init-db': cmd_init_db,
        'upload': cmd_upload,
        'optimize': cmd_optimize,
        'list': cmd_list,
        'delete': cmd_delete,
    }
    return commands[parsed_args.command](parsed_args)
