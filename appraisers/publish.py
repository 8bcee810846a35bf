"""
Atomic Publisher — copy a built tree into a fresh release and cut over.

Layout under the release root::

    <release_root>/<YYYYMMDDHHMMSS>/   one complete copy per publish
    <release_root>/current  -> <ts>    the live release (what the server reads)
    <release_root>/previous -> <ts>    the release live before the last cut-over

States, in order: Building -> Copied -> Verified -> CutOver ->
ServiceRestarted.  Nothing outside the new release directory changes until
the cut-over, which is a single ``os.replace`` of a freshly created symlink
onto ``current``.  Interrupting the process at any earlier point leaves the
old release live, and running the publish again starts over cleanly.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import requests

from .errors import PublishError

log = logging.getLogger(__name__)

REQUIRED_ENTRIES = ("index.html", "location", "appraiser", "sitemap.xml")
TEXT_SUFFIXES = {".html", ".htm", ".xml", ".txt", ".js", ".mjs", ".css", ".json", ".webmanifest"}
RELEASE_NAME_RE = re.compile(r"^\d{14}$")

CURRENT_LINK = "current"
PREVIOUS_LINK = "previous"

STATES = ("Building", "Copied", "Verified", "CutOver", "ServiceRestarted")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def release_timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).strftime("%Y%m%d%H%M%S")


# ---------------------------------------------------------------------------
# Mirror copy
# ---------------------------------------------------------------------------
def _same_file(src: Path, dst: Path) -> bool:
    try:
        a, b = src.stat(), dst.stat()
    except OSError:
        return False
    return a.st_size == b.st_size and int(a.st_mtime) == int(b.st_mtime)


def mirror_tree(src: Path | str, dst: Path | str) -> dict[str, int]:
    """Make *dst* an exact copy of *src*: copy new/changed, delete extraneous."""
    src, dst = Path(src), Path(dst)
    dst.mkdir(parents=True, exist_ok=True)
    copied = skipped = deleted = 0
    for dirpath, dirnames, filenames in os.walk(src):
        rel = Path(dirpath).relative_to(src)
        target_dir = dst / rel
        target_dir.mkdir(parents=True, exist_ok=True)

        wanted = set(dirnames) | set(filenames)
        for existing in target_dir.iterdir():
            if existing.name not in wanted:
                if existing.is_dir() and not existing.is_symlink():
                    shutil.rmtree(existing)
                else:
                    existing.unlink()
                deleted += 1

        for name in filenames:
            s, d = Path(dirpath) / name, target_dir / name
            if d.is_dir() and not d.is_symlink():
                shutil.rmtree(d)
            if not s.is_symlink() and _same_file(s, d):
                skipped += 1
                continue
            if d.is_symlink() or d.exists():
                d.unlink()
            shutil.copy2(s, d, follow_symlinks=False)
            copied += 1

        # os.walk does not descend into symlinked directories; they are
        # recreated as links with the same target.
        for name in dirnames:
            s, d = Path(dirpath) / name, target_dir / name
            if s.is_symlink():
                link = os.readlink(s)
                if d.is_symlink() and os.readlink(d) == link:
                    skipped += 1
                    continue
                if d.is_dir() and not d.is_symlink():
                    shutil.rmtree(d)
                elif d.is_symlink() or d.exists():
                    d.unlink()
                os.symlink(link, d)
                copied += 1
            elif d.is_symlink() or (d.exists() and not d.is_dir()):
                d.unlink()
    return {"copied": copied, "unchanged": skipped, "deleted": deleted}


def find_legacy_references(root: Path | str, markers: list[str], limit: int = 20) -> list[tuple[str, str]]:
    """(relative path, marker) for text files containing any marker."""
    root = Path(root)
    hits: list[tuple[str, str]] = []
    if not markers:
        return hits
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.suffix.lower() not in TEXT_SUFFIXES:
                continue
            text = path.read_text(encoding="utf-8", errors="ignore")
            for marker in markers:
                if marker in text:
                    hits.append((path.relative_to(root).as_posix(), marker))
                    break
            if len(hits) >= limit:
                return hits
    return hits


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------
@dataclass
class ReleasePlan:
    timestamp: str
    release_dir: Path
    current_link: Path
    current_target: str | None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "release_dir": str(self.release_dir),
            "current_link": str(self.current_link),
            "current_target": self.current_target,
        }


@dataclass
class PublishResult:
    action: str
    plan: ReleasePlan
    state: str
    copy_stats: dict[str, int] = field(default_factory=dict)
    restarted: bool = False
    restart_error: str = ""

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "state": self.state,
            **self.plan.to_dict(),
            "copy": dict(self.copy_stats),
            "container_restarted": self.restarted,
            **({"restart_error": self.restart_error} if self.restart_error else {}),
        }


class AtomicPublisher:
    def __init__(
        self,
        public_dir: Path | str,
        release_root: Path | str,
        legacy_markers: list[str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self.public_dir = Path(public_dir)
        self.release_root = Path(release_root)
        self.legacy_markers = list(legacy_markers or [])
        self.clock = clock
        self.runner = runner
        self.state = "Building"

    # -- links ------------------------------------------------------------
    @property
    def current_link(self) -> Path:
        return self.release_root / CURRENT_LINK

    @property
    def previous_link(self) -> Path:
        return self.release_root / PREVIOUS_LINK

    def _read_link(self, link: Path) -> str | None:
        if not link.is_symlink():
            return None
        return Path(os.readlink(link)).name

    def current_release(self) -> str | None:
        return self._read_link(self.current_link)

    def previous_release(self) -> str | None:
        return self._read_link(self.previous_link)

    def _swap_link(self, link: Path, target: str) -> None:
        """Point *link* at *target* with one atomic rename."""
        tmp = link.with_name(f".{link.name}.{os.getpid()}.tmp")
        if tmp.is_symlink() or tmp.exists():
            tmp.unlink()
        os.symlink(target, tmp)
        try:
            os.replace(tmp, link)
        except OSError:
            tmp.unlink()
            raise

    # -- state machine ----------------------------------------------------
    def check_public_dir(self) -> None:
        if not self.public_dir.is_dir():
            raise PublishError(f"public directory {self.public_dir} does not exist", "required-directories")

    def plan(self) -> ReleasePlan:
        self.check_public_dir()
        missing = [name for name in REQUIRED_ENTRIES if not (self.public_dir / name).exists()]
        if missing:
            raise PublishError(
                f"{self.public_dir} is missing required entries: {', '.join(missing)}",
                "required-directories",
            )
        timestamp = release_timestamp(self.clock())
        current = self.current_release()
        if current == timestamp:
            raise PublishError(f"release slot {timestamp} is already live; retry in a second")
        return ReleasePlan(
            timestamp=timestamp,
            release_dir=self.release_root / timestamp,
            current_link=self.current_link,
            current_target=current,
        )

    def copy(self, plan: ReleasePlan) -> dict[str, int]:
        log.info("Copying %s -> %s", self.public_dir, plan.release_dir)
        stats = mirror_tree(self.public_dir, plan.release_dir)
        self.state = "Copied"
        log.info("Copied %d files (%d unchanged, %d removed)",
                 stats["copied"], stats["unchanged"], stats["deleted"])
        return stats

    def verify(self, root: Path | str) -> None:
        hits = find_legacy_references(root, self.legacy_markers)
        if hits:
            for rel, marker in hits:
                log.error("Legacy reference %r in %s", marker, rel)
            raise PublishError(
                f"{len(hits)} file(s) still reference legacy hosts (first: {hits[0][0]} -> {hits[0][1]})",
                "legacy-references",
            )
        self.state = "Verified"
        log.info("Verified %s: no legacy references", root)

    def cut_over(self, plan: ReleasePlan) -> None:
        try:
            if plan.current_target and plan.current_target != plan.timestamp:
                self._swap_link(self.previous_link, plan.current_target)
            self._swap_link(self.current_link, plan.timestamp)
        except OSError as exc:
            raise PublishError(f"could not switch {self.current_link} to {plan.timestamp}: {exc}", "cut-over") from exc
        self.state = "CutOver"
        log.info("current -> %s (was: %s)", plan.timestamp, plan.current_target or "none")

    def restart_service(self, container: str) -> tuple[bool, str]:
        """Best-effort ``docker restart``; never raises."""
        try:
            result = self.runner(["docker", "restart", container], capture_output=True, text=True)
        except OSError as exc:
            log.warning("Failed to restart container %s: %s", container, exc)
            return False, str(exc)
        if result.returncode != 0:
            err = (result.stderr or "").strip() or f"exit status {result.returncode}"
            log.warning("Failed to restart container %s: %s", container, err)
            return False, err
        self.state = "ServiceRestarted"
        log.info("Restarted container %s", container)
        return True, ""

    def publish(self, *, dry_run: bool = False, restart: bool = False, container: str = "") -> PublishResult:
        self.state = "Building"
        plan = self.plan()
        if dry_run:
            self.verify(self.public_dir)
            log.info("Dry run: would copy into %s and point current at it", plan.release_dir)
            return PublishResult("dry-run", plan, self.state)

        self.release_root.mkdir(parents=True, exist_ok=True)
        stats = self.copy(plan)
        try:
            self.verify(plan.release_dir)
        except PublishError:
            log.error("Discarding unverified release %s", plan.release_dir)
            shutil.rmtree(plan.release_dir, ignore_errors=True)
            raise
        self.cut_over(plan)

        result = PublishResult("published", plan, self.state, copy_stats=stats)
        if restart and container:
            result.restarted, result.restart_error = self.restart_service(container)
            result.state = self.state
        return result

    # -- maintenance ------------------------------------------------------
    def list_releases(self) -> list[str]:
        """Release directory names, newest first."""
        if not self.release_root.is_dir():
            return []
        return sorted(
            (p.name for p in self.release_root.iterdir()
             if p.is_dir() and not p.is_symlink() and RELEASE_NAME_RE.match(p.name)),
            reverse=True,
        )

    def cleanup_releases(self, keep: int = 5) -> list[str]:
        """Remove old releases, keeping the newest *keep* plus current/previous."""
        releases = self.list_releases()
        active = {r for r in (self.current_release(), self.previous_release()) if r}
        to_keep = set(releases[:max(keep, 0)]) | active
        removed = []
        for name in releases:
            if name in to_keep:
                continue
            log.info("Removing old release: %s", name)
            shutil.rmtree(self.release_root / name)
            removed.append(name)
        return removed

    def rollback(self) -> str:
        """Swap current and previous; returns the release now live."""
        prev = self.previous_release()
        if not prev or not (self.release_root / prev).is_dir():
            raise PublishError("no previous release to roll back to", "rollback")
        cur = self.current_release()
        self._swap_link(self.current_link, prev)
        if cur:
            self._swap_link(self.previous_link, cur)
        log.info("Rolled back: current -> %s (was: %s)", prev, cur or "none")
        return prev

    def status(self) -> dict:
        return {
            "current": self.current_release(),
            "previous": self.previous_release(),
            "releases": self.list_releases(),
        }


# ---------------------------------------------------------------------------
# Smoke test
# ---------------------------------------------------------------------------
SMOKE_PATHS = ("/", "/location/", "/appraiser/", "/sitemap.xml")


def smoke_test(base_url: str, session=None, paths: tuple[str, ...] = SMOKE_PATHS) -> tuple[int, int]:
    """GET a few key URLs on the live site. Returns (passed, failed)."""
    http = session or requests
    passed = failed = 0
    for path in paths:
        url = base_url.rstrip("/") + path
        try:
            r = http.get(url, timeout=15, allow_redirects=True)
        except requests.RequestException as e:
            log.error("  [FAIL] %s: %s", path, e)
            failed += 1
            continue
        if r.status_code == 200 and r.content:
            log.info("  [PASS] %s (%d bytes)", path, len(r.content))
            passed += 1
        else:
            log.error("  [FAIL] %s: status=%d", path, r.status_code)
            failed += 1
    return passed, failed
