#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path


def _bootstrap_imports() -> None:
    backend_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(backend_root))


def main() -> int:
    parser = argparse.ArgumentParser(description="Recompute listing rating aggregates from visible reviews.")
    parser.add_argument(
        "--listing-id",
        action="append",
        dest="listing_ids",
        default=None,
        help="Listing to recompute (repeatable). Defaults to every listing.",
    )
    args = parser.parse_args()

    _bootstrap_imports()

    from campsite_moderation.config import settings  # noqa: PLC0415
    from campsite_moderation.database import build_engine, build_session_factory  # noqa: PLC0415
    from campsite_moderation.logging_utils import configure_logging  # noqa: PLC0415
    from campsite_moderation.ratings import recompute_many  # noqa: PLC0415

    configure_logging()
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)
    try:
        with session_factory() as db:
            changed = recompute_many(db, args.listing_ids)
    finally:
        engine.dispose()

    print(f"recomputed aggregates changed={changed}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
