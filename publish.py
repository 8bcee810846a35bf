#!/usr/bin/env python3
"""
publish.py — Cut a built site into production through a release symlink.

Architecture:
    <release-root>/
        <YYYYMMDDHHMMSS>/     ← one complete copy per publish
        current  → <ts>       ← served by the web container
        previous → <ts>       ← kept for --rollback

Steps: regenerate hubs/sitemap in the public dir, copy it into a fresh
release, scan the copy for legacy host references, swap ``current``, then
optionally restart the container.

Usage:
    python publish.py --public-dir dist -v                     # publish + restart
    python publish.py --public-dir dist --dry-run              # plan and verify only
    python publish.py --public-dir dist --no-restart --keep 5  # publish, prune old releases
    python publish.py --status                                 # show current/previous
    python publish.py --rollback                               # swap back to previous
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from appraisers.config import ROOT, load_site_config
from appraisers.errors import PipelineError
from appraisers.publish import AtomicPublisher, smoke_test
from appraisers.sitemap import regenerate

log = logging.getLogger("publish")

DEFAULT_PUBLIC_DIR = ROOT / "dist"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Art Appraisers Directory — atomic publish")
    parser.add_argument("--public-dir", default=str(DEFAULT_PUBLIC_DIR), help="Built tree to publish")
    parser.add_argument("--release-root", default=None, help="Releases directory (overrides config)")
    parser.add_argument("--base-url", default=None, help="Canonical site origin (overrides config)")
    parser.add_argument("--dry-run", action="store_true", help="Plan and verify without touching releases")
    restart = parser.add_mutually_exclusive_group()
    restart.add_argument("--restart-container", dest="restart", action="store_true", default=True,
                         help="Restart the web container after cut-over (default)")
    restart.add_argument("--no-restart", dest="restart", action="store_false",
                         help="Skip the container restart")
    parser.add_argument("--container", default=None, help="Container to restart (overrides config)")
    parser.add_argument("--keep", type=int, default=None, help="Prune releases, keeping this many newest")
    parser.add_argument("--smoke-test", action="store_true", help="GET key pages on the live site afterwards")
    parser.add_argument("--status", action="store_true", help="Show current/previous releases and exit")
    parser.add_argument("--rollback", action="store_true", help="Point current back at previous and exit")
    parser.add_argument("--config", default=None, help="Site config file (default: site.yaml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def run(args: argparse.Namespace) -> dict:
    config = load_site_config(args.config).with_overrides(
        base_url=args.base_url,
        release_root=args.release_root,
        container_name=args.container,
    )
    publisher = AtomicPublisher(
        public_dir=args.public_dir,
        release_root=config.release_root,
        legacy_markers=config.legacy_markers,
    )

    if args.status:
        return {"action": "status", **publisher.status()}
    if args.rollback:
        live = publisher.rollback()
        return {"action": "rollback", "current": live, "previous": publisher.previous_release()}

    publisher.check_public_dir()
    sitemap = regenerate(Path(args.public_dir), config)
    result = publisher.publish(
        dry_run=args.dry_run,
        restart=args.restart,
        container=config.container_name,
    )
    summary = {**result.to_dict(), **sitemap.to_dict()}

    if args.dry_run:
        return summary
    if args.keep is not None:
        summary["removed_releases"] = publisher.cleanup_releases(args.keep)
    if args.smoke_test:
        passed, failed = smoke_test(config.base_url)
        summary["smoke"] = {"passed": passed, "failed": failed}
        if failed:
            log.error("Smoke tests failed; run `python publish.py --rollback` to restore %s",
                      result.plan.current_target or "the previous release")
    return summary


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        summary = run(args)
    except PipelineError as exc:
        if args.verbose:
            log.exception("Publish failed")
        print(f"FATAL [{exc.invariant}]: {exc}", file=sys.stderr)
        raise SystemExit(1)

    print(json.dumps(summary, indent=2))
    if summary.get("smoke", {}).get("failed"):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
