# /mirror_copy.py
"""
Mirror Copy
- Mirrors a source folder into a destination folder in a single pass.
- Copies only files that are missing or whose content differs at the destination.
- Every copy is verified: the destination is fingerprinted again and compared
  to the source fingerprint taken before the copy. A mismatch stops the run.
- Hidden entries (names starting with ".") are skipped unless --hidden is given.
- Extra paths can be skipped via gitignore-style rules (--ignore / config file).
- Optional --remove deletes source files once their destination copy is
  confirmed identical.
- Console output, one line per entry:
  - created <dir>   light brown
  - copied <file>   green
  - exists <file>   white
- Optional plain log file (no color codes) via --log-dir.
- Defaults can be stored in ~/.mirror_copy/config.json

Usage
  pip install pathspec colorama
  python mirror_copy.py SOURCE DESTINATION
  python mirror_copy.py "/src" "/dst" --hidden --remove --ignore "*.tmp"
"""

from __future__ import annotations

import argparse
import datetime as dt
import hashlib
import hmac
import json
import logging
import os
import shutil
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Optional, Protocol

from colorama import just_fix_windows_console
from pathspec import GitIgnoreSpec

LOGGER_NAME = "mirror_copy"

APP_DIR = Path.home() / ".mirror_copy"
CONFIG_PATH = APP_DIR / "config.json"

HIDDEN_MARKER = "."
DEFAULT_HASH = "md5"
CHUNK_SIZE = 1024 * 1024


# -------------------------
# Console styling
# -------------------------

class Ansi:
    RESET = "\x1b[0m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    ORANGE = "\x1b[38;5;208m"
    WHITE = "\x1b[97m"
    LIGHT_BROWN = "\x1b[33m"


ACTION_COLORS = {
    "created": Ansi.LIGHT_BROWN,
    "copied": Ansi.GREEN,
    "exists": Ansi.WHITE,
    "removed": Ansi.ORANGE,
}


def _printable(text: str) -> str:
    # undecodable filename bytes arrive as lone surrogates; show them as U+FFFD
    try:
        return text.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
    except UnicodeEncodeError:
        return text.encode("utf-8", "replace").decode("utf-8")


def _supports_color(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except (AttributeError, ValueError):
        return False


class ColorizingFormatter(logging.Formatter):
    def __init__(self, use_color: bool, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        base = _printable(super().format(record))
        if not self.use_color:
            return base

        if record.levelno >= logging.ERROR:
            return f"{Ansi.RED}{base}{Ansi.RESET}"

        action = getattr(record, "action", None)
        is_dir = getattr(record, "is_dir", None)
        path_text = getattr(record, "path_text", None)

        if action and base.startswith(action):
            color = ACTION_COLORS.get(action, "")
            base = f"{color}{action}{Ansi.RESET}{base[len(action):]}"

        if path_text and base.endswith(path_text):
            pcolor = Ansi.LIGHT_BROWN if is_dir else Ansi.WHITE
            base = f"{base[:-len(path_text)]}{pcolor}{path_text}{Ansi.RESET}"
        return base


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self.max_level


def _today_log_name(prefix: str = "mirror_copy") -> str:
    return f"{prefix}_{dt.date.today().isoformat()}.log"


def setup_logger(log_dir: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Route progress lines to stdout and warnings/errors to stderr.
    Existing handlers are replaced so the streams in effect right now are used.
    """
    logger = logging.getLogger(LOGGER_NAME)
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    just_fix_windows_console()

    out = logging.StreamHandler(sys.stdout)
    out.setLevel(level)
    out.addFilter(_MaxLevelFilter(logging.INFO))
    out.setFormatter(ColorizingFormatter(use_color=_supports_color(sys.stdout), fmt="%(message)s"))

    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.WARNING)
    err.setFormatter(ColorizingFormatter(use_color=_supports_color(sys.stderr), fmt="%(message)s"))

    logger.addHandler(out)
    logger.addHandler(err)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / _today_log_name()
        fh = logging.FileHandler(log_path, encoding="utf-8", errors="backslashreplace")
        fh.setFormatter(ColorizingFormatter(
            use_color=False, fmt="%(asctime)s | %(levelname)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S",
        ))
        fh.setLevel(level)
        logger.addHandler(fh)
        logger.debug("Logging to: %s", log_path)

    return logger


def log_action(
    logger: logging.Logger,
    action: str,
    path: Path,
    is_dir: bool,
    level: int = logging.INFO,
) -> None:
    extra = {"action": action, "path_text": _printable(str(path)), "is_dir": is_dir}
    logger.log(level, "%s %s", action, path, extra=extra)


# -------------------------
# Errors
# -------------------------

class MirrorCopyError(Exception):
    """Base exception for mirror_copy failures."""


class ConfigError(MirrorCopyError):
    """Invalid options or config file values."""


class SelfCopyError(MirrorCopyError):
    """Source and destination point at the same place."""

    def __init__(self, path: Path):
        super().__init__(f"attempt to copy to self: {path}")
        self.path = path


class BadCopy(MirrorCopyError):
    """
    The destination fingerprint differs from the source fingerprint right
    after a copy. Raised once and never retried.
    """

    def __init__(self, source: Path, destination: Path):
        super().__init__(source, destination)
        self.source = source
        self.destination = destination

    def __str__(self) -> str:
        return f"bad copy:\n  source: {self.source}\n  destination: {self.destination}"


# -------------------------
# Fingerprints
# -------------------------

class Fingerprint:
    """Content digest of one file. Only equality is defined."""

    __slots__ = ("algorithm", "digest")

    def __init__(self, algorithm: str, digest: bytes):
        self.algorithm = algorithm
        self.digest = digest

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fingerprint):
            return NotImplemented
        return self.algorithm == other.algorithm and hmac.compare_digest(self.digest, other.digest)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Fingerprint({self.algorithm}:{self.digest.hex()})"


class FingerprintProvider(Protocol):
    def compute(self, path: Path) -> Fingerprint: ...


def available_algorithms() -> list[str]:
    return sorted(a for a in hashlib.algorithms_guaranteed if not a.startswith("shake_"))


class HashlibFingerprint:
    def __init__(self, algorithm: str = DEFAULT_HASH, chunk_size: int = CHUNK_SIZE):
        if algorithm not in available_algorithms():
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def compute(self, path: Path) -> Fingerprint:
        h = hashlib.new(self.algorithm)
        with Path(path).open("rb") as f:
            while True:
                b = f.read(self.chunk_size)
                if not b:
                    break
                h.update(b)
        return Fingerprint(self.algorithm, h.digest())


# -------------------------
# Walk + filter
# -------------------------

class EntryKind(Enum):
    DIRECTORY = "directory"
    FILE = "file"
    OTHER = "other"


@dataclass(frozen=True)
class Entry:
    kind: EntryKind
    absolute_path: Path
    relative_path: Path


class EntryFilter:
    def __init__(self, include_hidden: bool = False, patterns: tuple[str, ...] | list[str] = ()):
        self.include_hidden = include_hidden
        self.patterns = tuple(patterns)
        self.spec = GitIgnoreSpec.from_lines(self.patterns) if self.patterns else None

    def excludes(self, relative_path: Path, is_dir: bool) -> bool:
        if not self.include_hidden and relative_path.name.startswith(HIDDEN_MARKER):
            return True
        if self.spec is None:
            return False
        rel_posix = relative_path.as_posix()
        if is_dir and not rel_posix.endswith("/"):
            rel_posix += "/"
        return self.spec.match_file(rel_posix)


def _classify(dir_entry: os.DirEntry) -> EntryKind:
    if dir_entry.is_symlink():
        return EntryKind.OTHER
    if dir_entry.is_dir(follow_symlinks=False):
        return EntryKind.DIRECTORY
    if dir_entry.is_file(follow_symlinks=False):
        return EntryKind.FILE
    return EntryKind.OTHER


def _list_dir(directory: Path, logger: logging.Logger) -> Iterator[os.DirEntry]:
    try:
        with os.scandir(directory) as it:
            children = sorted(it, key=lambda e: e.name)
    except OSError as e:
        logger.warning("skipped unreadable directory: %s | %s", directory, e)
        return iter(())
    return iter(children)


def walk_tree(
    root: Path,
    entry_filter: Optional[EntryFilter] = None,
    logger: Optional[logging.Logger] = None,
) -> Iterator[Entry]:
    """
    Depth-first, pre-order walk below root (root itself is not yielded).
    A directory is always yielded before anything it contains and siblings
    come in name order. Excluded directories are not descended into.
    Unreadable entries are dropped with a warning; the walk goes on.
    """
    root = Path(root)
    logger = logger or logging.getLogger(LOGGER_NAME)
    stack = [_list_dir(root, logger)]

    while stack:
        child = next(stack[-1], None)
        if child is None:
            stack.pop()
            continue

        try:
            kind = _classify(child)
        except OSError as e:
            logger.warning("skipped unreadable entry: %s | %s", child.path, e)
            continue

        absolute_path = Path(child.path)
        relative_path = absolute_path.relative_to(root)
        is_dir = kind is EntryKind.DIRECTORY
        if entry_filter is not None and entry_filter.excludes(relative_path, is_dir):
            continue

        yield Entry(kind=kind, absolute_path=absolute_path, relative_path=relative_path)

        if is_dir:
            stack.append(_list_dir(absolute_path, logger))


# -------------------------
# Sync engine
# -------------------------

@dataclass(frozen=True)
class SyncOptions:
    include_hidden: bool = False
    remove_copied_files: bool = False
    ignore_patterns: tuple[str, ...] = ()


@dataclass
class SyncSummary:
    created: int = 0
    existing: int = 0
    copied: int = 0
    removed: int = 0


class Reporter:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def created(self, relative_path: Path) -> None:
        log_action(self.logger, "created", relative_path, is_dir=True)

    def exists(self, relative_path: Path) -> None:
        log_action(self.logger, "exists", relative_path, is_dir=False)

    def copied(self, relative_path: Path) -> None:
        log_action(self.logger, "copied", relative_path, is_dir=False)

    def removed(self, relative_path: Path) -> None:
        log_action(self.logger, "removed", relative_path, is_dir=False, level=logging.DEBUG)


def _same_file(source: Path, target: Path) -> bool:
    if target.exists():
        return os.path.samefile(source, target)
    return source.resolve() == target.resolve()


class MirrorEngine:
    """
    Brings destination into content-identical correspondence with source.

    Entries are processed one at a time in walk order. Directories are
    created when missing, files are copied when missing or different and
    re-fingerprinted after the copy. Any OSError, a copy onto itself, or a
    fingerprint mismatch after copying ends the run immediately.
    """

    def __init__(
        self,
        options: Optional[SyncOptions] = None,
        fingerprint: Optional[FingerprintProvider] = None,
        reporter: Optional[Reporter] = None,
        copy_file: Optional[Callable[[Path, Path], object]] = None,
    ):
        self.options = options or SyncOptions()
        self.fingerprint = fingerprint or HashlibFingerprint()
        self.reporter = reporter or Reporter()
        self.copy_file = copy_file or shutil.copy2
        self.entry_filter = EntryFilter(
            include_hidden=self.options.include_hidden,
            patterns=self.options.ignore_patterns,
        )

    def validate_roots(self, source: Path, destination: Path) -> None:
        if not source.exists():
            raise FileNotFoundError(f"Source folder does not exist: {source}")
        if not source.is_dir():
            raise NotADirectoryError(f"Source is not a folder: {source}")

        src = source.resolve()
        dst = destination.resolve()
        if src == dst:
            raise SelfCopyError(destination)

        try:
            inside = dst.relative_to(src)
        except ValueError:
            return

        # destination below source is fine only if the walk never reaches it
        prefix = Path()
        for part in inside.parts:
            prefix = prefix / part
            if self.entry_filter.excludes(prefix, is_dir=True):
                return
        raise SelfCopyError(destination)

    def run(self, source: Path, destination: Path) -> SyncSummary:
        source = Path(source)
        destination = Path(destination)
        self.validate_roots(source, destination)

        logger = self.reporter.logger
        logger.debug("sync: %s -> %s", source, destination)
        summary = SyncSummary()

        if not destination.exists():
            destination.mkdir(parents=True)
            self.reporter.created(Path("."))
            summary.created += 1

        for entry in walk_tree(source, self.entry_filter, logger):
            self.sync_entry(entry, destination, summary)

        logger.debug(
            "done: %d created, %d exists, %d copied, %d removed",
            summary.created,
            summary.existing,
            summary.copied,
            summary.removed,
        )
        return summary

    def sync_entry(self, entry: Entry, destination: Path, summary: SyncSummary) -> None:
        target = destination / entry.relative_path

        if entry.kind is EntryKind.DIRECTORY:
            if not target.exists():
                target.mkdir(parents=True)
                self.reporter.created(entry.relative_path)
                summary.created += 1
            return

        if entry.kind is EntryKind.FILE:
            self._sync_file(entry, target, summary)

    def _sync_file(self, entry: Entry, target: Path, summary: SyncSummary) -> None:
        # before the "exists" branch: target may be source via a symlinked dir
        if _same_file(entry.absolute_path, target):
            raise SelfCopyError(target)

        source_print = self.fingerprint.compute(entry.absolute_path)

        if target.exists() and source_print == self.fingerprint.compute(target):
            self.reporter.exists(entry.relative_path)
            summary.existing += 1
            self._remove_source(entry, summary)
            return

        self.copy_file(entry.absolute_path, target)
        if source_print != self.fingerprint.compute(target):
            raise BadCopy(entry.absolute_path, target)

        self.reporter.copied(entry.relative_path)
        summary.copied += 1
        self._remove_source(entry, summary)

    def _remove_source(self, entry: Entry, summary: SyncSummary) -> None:
        if not self.options.remove_copied_files:
            return
        entry.absolute_path.unlink()
        self.reporter.removed(entry.relative_path)
        summary.removed += 1


# -------------------------
# Config / CLI
# -------------------------

@dataclass(frozen=True)
class AppConfig:
    source: Path
    destination: Path
    options: SyncOptions = field(default_factory=SyncOptions)
    hash_name: str = DEFAULT_HASH
    log_dir: Optional[Path] = None
    verbose: bool = False


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="mirror-copy",
        description="Copy new and changed files from one folder to another, verifying every copy.",
    )
    p.add_argument("source", type=str, help="Folder to copy from.")
    p.add_argument("destination", type=str, help="Folder to copy into.")
    p.add_argument(
        "-H", "--hidden", action=argparse.BooleanOptionalAction, default=None,
        help="Copy hidden files (starting with a dot).",
    )
    p.add_argument(
        "-r", "--remove", action=argparse.BooleanOptionalAction, default=None,
        help="Remove source files once their copy is verified.",
    )
    p.add_argument(
        "-i", "--ignore", action="append", default=[], metavar="PATTERN",
        help="Gitignore-style pattern to skip (repeatable).",
    )
    p.add_argument("--hash", type=str, default=None, choices=available_algorithms(), help="Fingerprint algorithm.")
    p.add_argument("--log-dir", type=str, default=None, help="Also write a plain log file into this directory.")
    p.add_argument("-v", "--verbose", action="store_true", help="Show removals and a summary.")
    p.add_argument("--config", type=str, default=None, help=f"Defaults file (default: {CONFIG_PATH}).")
    return p.parse_args(argv)


def load_config_file(path: Optional[Path] = None) -> dict:
    """
    Read the JSON defaults file. The implicit CONFIG_PATH may be missing or
    broken (no defaults); a file named explicitly must exist and parse.
    """
    if path is None:
        try:
            if CONFIG_PATH.exists():
                data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    return data
        except (OSError, ValueError):
            pass
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must hold a JSON object")
    return data


def _config_value(saved: dict, key: str, kind: type, default):
    if key not in saved:
        return default
    value = saved[key]
    if not isinstance(value, kind):
        raise ConfigError(f"Config value {key!r} must be {kind.__name__}, got {value!r}")
    return value


def build_effective_config(args: argparse.Namespace) -> AppConfig:
    saved = load_config_file(Path(args.config).expanduser() if args.config else None)

    saved_hidden = _config_value(saved, "include_hidden", bool, False)
    saved_remove = _config_value(saved, "remove_copied_files", bool, False)
    saved_ignore = _config_value(saved, "ignore", list, [])
    saved_hash = _config_value(saved, "hash", str, DEFAULT_HASH)
    saved_log = _config_value(saved, "log_dir", str, None)

    if not all(isinstance(p, str) for p in saved_ignore):
        raise ConfigError(f"Config value 'ignore' must be a list of strings, got {saved_ignore!r}")

    hash_name = args.hash or saved_hash
    if hash_name not in available_algorithms():
        raise ConfigError(f"Unsupported hash algorithm: {hash_name}")

    options = SyncOptions(
        include_hidden=args.hidden if args.hidden is not None else saved_hidden,
        remove_copied_files=args.remove if args.remove is not None else saved_remove,
        ignore_patterns=tuple(saved_ignore) + tuple(args.ignore),
    )
    log_dir = args.log_dir or saved_log

    return AppConfig(
        source=Path(args.source).expanduser(),
        destination=Path(args.destination).expanduser(),
        options=options,
        hash_name=hash_name,
        log_dir=Path(log_dir).expanduser() if log_dir else None,
        verbose=args.verbose,
    )


# -------------------------
# Main
# -------------------------

def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    try:
        cfg = build_effective_config(args)
    except ConfigError as e:
        logger = setup_logger()
        logger.error("Config error: %s", e)
        return 2

    try:
        logger = setup_logger(cfg.log_dir, verbose=cfg.verbose)
    except OSError as e:
        logger = setup_logger()
        logger.error("Config error: cannot open log file in %s | %s", cfg.log_dir, e)
        return 2

    engine = MirrorEngine(
        options=cfg.options,
        fingerprint=HashlibFingerprint(cfg.hash_name),
        reporter=Reporter(logger),
    )

    try:
        engine.run(cfg.source, cfg.destination)
    except (MirrorCopyError, OSError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
