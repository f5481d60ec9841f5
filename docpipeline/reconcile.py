# File: docpipeline/reconcile.py
import argparse
import json
import sys
from dataclasses import asdict

import structlog
from dotenv import load_dotenv
load_dotenv()

from docpipeline.core.logging_config import setup_logging
setup_logging("docpipeline-reconcile")

from docpipeline.dependencies import build_services, get_reconcile_use_case

log = structlog.get_logger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Requeue stuck documents and report store inconsistencies.")
    parser.add_argument("--delete-orphans", action="store_true", help="Delete blobs that have no metadata record after the grace period.")
    args = parser.parse_args(argv)

    services = build_services()
    try:
        report = get_reconcile_use_case(services).run(delete_orphans=args.delete_orphans)
    finally:
        if services.engine is not None:
            services.engine.dispose()

    print(json.dumps(asdict(report), indent=2))
    return 1 if report.missing_content or report.requeue_failed else 0


if __name__ == "__main__":
    sys.exit(main())
