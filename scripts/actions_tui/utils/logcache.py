"""
Disk-backed cache of downloaded run log archives.

Each (run, attempt) pair owns one directory ``run-<id>-attempt-<n>`` under the
cache root. A directory is written once (extracted into a private temp
directory, then renamed into place) and afterwards only ever deleted.

Two archive layouts are understood:

- flat: ``{index}_{job name}.txt`` at the root, one pre-concatenated log per job
- nested: one directory per job holding one file per step

The flat layout wins when both are present.
"""

import io
import json
import logging
import os
import re
import shutil
import tempfile
import time
import zipfile
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import BinaryIO

from gha_utils import write_json_atomic

_log = logging.getLogger("gha_tui.tui.cache")

META_FILE = "meta.json"
ENTRY_RE = re.compile(r"^run-(\d+)-attempt-(\d+)$")


class CacheError(Exception):
    """Disk or archive failure inside the log cache (callers treat it as a miss)."""
    pass


@dataclass
class EntryMeta:
    """Sidecar record describing a cache entry without network access."""
    run_id: int
    attempt: int
    workflow_name: str = ""
    display_title: str = ""
    branch: str = ""
    actor: str = ""
    event: str = ""
    created_at: str | None = None
    stored_at: str | None = None

    @classmethod
    def for_run(cls, run, attempt: int) -> "EntryMeta":
        """Build metadata from an actions_api Run."""
        created = run.created_at.astimezone(timezone.utc).isoformat() if run.created_at else None
        return cls(
            run_id=run.id,
            attempt=attempt,
            workflow_name=run.name,
            display_title=run.display_title,
            branch=run.head_branch,
            actor=run.actor.login,
            event=run.event,
            created_at=created,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "EntryMeta":
        known = {k: data.get(k) for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)


@dataclass
class CacheEntryInfo:
    """One cache directory as reported by list_entries()."""
    run_id: int
    attempt: int
    path: Path
    size: int
    modified: datetime
    meta: EntryMeta | None = None


@dataclass
class _EntryScan:
    path: Path
    files: list[tuple[Path, int, float]] = field(default_factory=list)

    @property
    def size(self) -> int:
        return sum(size for _, size, _ in self.files)

    @property
    def newest(self) -> float:
        return max((mtime for _, _, mtime in self.files), default=0.0)


def parse_root_log_name(filename: str) -> str:
    """
    Extract the job name from a flat-layout file name.

    "0_Build & Deploy.txt" -> "Build & Deploy". A prefix before the first
    underscore is only stripped when it is entirely digits.
    """
    name = filename[:-4] if filename.endswith(".txt") else filename
    prefix, sep, rest = name.partition("_")
    if sep and prefix.isdigit():
        return rest
    return name


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


class LogCache:
    """
    Log archive cache keyed by (run id, attempt).

    Args:
        root: Cache root directory (created if missing)
        max_size: Size cap in bytes enforced by evict()
        ttl: Entries whose newest file is older than this are stale
    """

    def __init__(self, root: Path, max_size: int, ttl: timedelta):
        self.root = Path(root)
        self.max_size = max_size
        self.ttl = ttl
        self.root.mkdir(parents=True, exist_ok=True)

    def entry_dir(self, run_id: int, attempt: int) -> Path:
        return self.root / f"run-{run_id}-attempt-{attempt}"

    # === Freshness ===

    def _entry_mtime(self, path: Path) -> float | None:
        """Newest modification time of the entry's log files, None when it has none."""
        newest = None
        for dirpath, _, filenames in os.walk(path):
            for name in filenames:
                if name == META_FILE and dirpath == str(path):
                    continue
                try:
                    mtime = os.stat(os.path.join(dirpath, name)).st_mtime
                    newest = mtime if newest is None else max(newest, mtime)
                except FileNotFoundError:
                    continue
        return newest

    def has_run(self, run_id: int, attempt: int) -> bool:
        """True when the entry exists on disk and is younger than the TTL."""
        path = self.entry_dir(run_id, attempt)
        try:
            if not path.is_dir():
                return False
            newest = self._entry_mtime(path)
        except OSError:
            return False
        if newest is None:
            return False
        return time.time() - newest < self.ttl.total_seconds()

    # === Writes ===

    def store_run_logs(self, run_id: int, attempt: int, archive: BinaryIO | bytes) -> Path:
        """
        Extract a zip archive of plain-text logs into the entry directory.

        The archive is unpacked into a temporary sibling directory and renamed
        into place, so readers never observe a half-written entry.

        Raises:
            CacheError: On a corrupt archive or any disk failure
        """
        data = archive if isinstance(archive, (bytes, bytearray)) else archive.read()
        target = self.entry_dir(run_id, attempt)
        try:
            staging = Path(tempfile.mkdtemp(prefix=f".{target.name}-", dir=self.root))
        except OSError as e:
            raise CacheError(f"create staging dir: {e}") from e

        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    local = (staging / os.path.normpath(info.filename)).resolve()
                    if not local.is_relative_to(staging.resolve()):
                        _log.debug(f"Skipping archive member outside entry: {info.filename}")
                        continue
                    local.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src, open(local, "wb") as dst:
                        shutil.copyfileobj(src, dst)
            if target.exists():
                shutil.rmtree(target)
            os.replace(staging, target)
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise CacheError(f"store run {run_id} attempt {attempt}: {e}") from e

        _log.debug(f"Stored logs for run {run_id} attempt {attempt} in {target}")
        return target

    def write_meta(self, meta: EntryMeta) -> None:
        path = self.entry_dir(meta.run_id, meta.attempt)
        if meta.stored_at is None:
            meta.stored_at = datetime.now(timezone.utc).isoformat()
        try:
            write_json_atomic(path / META_FILE, asdict(meta))
        except OSError as e:
            raise CacheError(f"write meta: {e}") from e

    def read_meta(self, run_id: int, attempt: int) -> EntryMeta | None:
        path = self.entry_dir(run_id, attempt) / META_FILE
        try:
            with open(path) as f:
                return EntryMeta.from_dict(json.load(f))
        except (OSError, ValueError, TypeError):
            return None

    # === Reads ===

    def get_job_log(self, run_id: int, attempt: int, job_name: str) -> str:
        """
        Read one job's log.

        Prefers the flat ``{index}_{job}.txt`` file; otherwise concatenates the
        job directory's step files, each under a ``=== filename ===`` line.

        Raises:
            CacheError: If the entry or job cannot be read
        """
        path = self.entry_dir(run_id, attempt)
        try:
            for child in sorted(path.iterdir()):
                if child.is_file() and child.suffix == ".txt" and parse_root_log_name(child.name) == job_name:
                    return _read_text(child)
            return self._read_job_dir(path / job_name)
        except OSError as e:
            raise CacheError(f"read job {job_name!r}: {e}") from e

    @staticmethod
    def _read_job_dir(job_dir: Path) -> str:
        parts = []
        for step in sorted(job_dir.iterdir(), key=lambda p: p.name):
            if not step.is_file():
                continue
            parts.append(f"=== {step.name} ===\n{_read_text(step)}\n")
        return "".join(parts)

    def get_all_job_logs(self, run_id: int, attempt: int) -> dict[str, str]:
        """
        Read every job log of an entry as a job name -> content map.

        Raises:
            CacheError: If the entry cannot be read
        """
        path = self.entry_dir(run_id, attempt)
        try:
            children = sorted(path.iterdir(), key=lambda p: p.name)
            logs = {}
            for child in children:
                if child.is_file() and child.suffix == ".txt":
                    logs[parse_root_log_name(child.name)] = _read_text(child)
            if logs:
                return logs
            for child in children:
                if child.is_dir():
                    logs[child.name] = self._read_job_dir(child)
            return logs
        except OSError as e:
            raise CacheError(f"read run {run_id} attempt {attempt}: {e}") from e

    # === Eviction ===

    def _scan(self) -> dict[str, _EntryScan]:
        """Walk the cache root once, grouping files by top-level entry."""
        entries: dict[str, _EntryScan] = {}
        for dirpath, dirnames, filenames in os.walk(self.root):
            rel = Path(dirpath).relative_to(self.root)
            if rel == Path("."):
                # Staging directories belong to in-flight stores
                dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                top = None
            else:
                top = rel.parts[0]
            for name in filenames:
                full = Path(dirpath) / name
                try:
                    st = full.stat()
                except FileNotFoundError:
                    continue
                key = top or name
                scan = entries.setdefault(key, _EntryScan(self.root / key))
                scan.files.append((full, st.st_size, st.st_mtime))
        return entries

    def evict(self) -> int:
        """
        Remove expired files, then whole entries oldest-first until under the size cap.

        Both sweeps act on a single directory walk.

        Returns:
            Number of files removed
        """
        entries = self._scan()
        cutoff = time.time() - self.ttl.total_seconds()
        removed = 0

        for scan in entries.values():
            kept = []
            for path, size, mtime in scan.files:
                if mtime < cutoff:
                    try:
                        path.unlink()
                        removed += 1
                    except FileNotFoundError:
                        pass
                    except OSError as e:
                        _log.debug(f"Evict: cannot remove {path}: {e}")
                        kept.append((path, size, mtime))
                else:
                    kept.append((path, size, mtime))
            scan.files = kept
            if not kept and scan.path.is_dir():
                shutil.rmtree(scan.path, ignore_errors=True)

        live = sorted((s for s in entries.values() if s.files), key=lambda s: s.newest)
        total = sum(s.size for s in live)
        for scan in live:
            if total <= self.max_size:
                break
            if scan.path.is_dir():
                shutil.rmtree(scan.path, ignore_errors=True)
            else:
                scan.path.unlink(missing_ok=True)
            removed += len(scan.files)
            total -= scan.size
            _log.debug(f"Evict: removed {scan.path.name} ({scan.size} bytes)")

        if removed:
            _log.info(f"Log cache eviction removed {removed} files")
        return removed

    # === Management ===

    def list_entries(self) -> list[CacheEntryInfo]:
        """All entries, newest first."""
        result = []
        for key, scan in self._scan().items():
            match = ENTRY_RE.match(key)
            if not match or not scan.path.is_dir():
                continue
            run_id, attempt = int(match.group(1)), int(match.group(2))
            result.append(CacheEntryInfo(
                run_id=run_id,
                attempt=attempt,
                path=scan.path,
                size=scan.size,
                modified=datetime.fromtimestamp(scan.newest, tz=timezone.utc),
                meta=self.read_meta(run_id, attempt),
            ))
        result.sort(key=lambda e: e.modified, reverse=True)
        return result

    def delete_entry(self, run_id: int, attempt: int) -> None:
        shutil.rmtree(self.entry_dir(run_id, attempt), ignore_errors=True)

    def clear(self) -> None:
        """Delete every entry, keeping the root directory."""
        for child in self.root.iterdir():
            if child.is_dir():
                shutil.rmtree(child, ignore_errors=True)
            else:
                child.unlink(missing_ok=True)

    def total_size(self) -> int:
        return sum(scan.size for scan in self._scan().values())
