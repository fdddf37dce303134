#!/usr/bin/env python
"""
Start the advisory router HTTP API.
"""

import argparse
import logging
import os
import sys

import uvicorn

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from advisory_router.infra.config import get_config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    cfg = get_config()
    parser = argparse.ArgumentParser(
        description="Start the advisory router FastAPI server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python run_web.py                          # default settings
    python run_web.py --port 8080              # listen on 8080
    python run_web.py --catalog-store sqlite   # sqlite-backed catalog
    python run_web.py --reload                 # auto reload
        """
    )
    parser.add_argument('--host', type=str, default='0.0.0.0', help='bind address (default: 0.0.0.0)')
    parser.add_argument('--port', type=int, default=cfg.fastapi_port, help=f'port (default: {cfg.fastapi_port})')
    parser.add_argument('--reload', action='store_true', help='enable auto reload (development)')
    parser.add_argument(
        '--catalog-store',
        type=str,
        choices=['memory', 'sqlite'],
        default=None,
        help='catalog backend (default: CATALOG_STORE or memory)'
    )
    parser.add_argument('--workers', type=int, default=1, help='worker processes (default: 1)')
    args = parser.parse_args()

    if args.catalog_store:
        os.environ['CATALOG_STORE'] = args.catalog_store
        get_config.cache_clear()

    display_host = args.host if args.host != '0.0.0.0' else 'localhost'
    logger.info(f"Starting advisory router: http://{display_host}:{args.port}")
    logger.info(f"API docs: http://{display_host}:{args.port}/docs")

    uvicorn.run(
        "advisory_router.api.server:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers if not args.reload else 1,
        log_level="info"
    )


if __name__ == '__main__':
    main()
