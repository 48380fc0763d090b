"""
Vault indexer: find notes, read and parse them.

A pass never aborts because of one bad file. Each failure (oversized,
unreadable, bad frontmatter, escaping the vault) is recorded as an
IndexationError and the pass continues with the next file.
"""

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Union

from .errors import IndexationError, PathSecurityError
from .parser import parse_note
from .types import Document

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


@dataclass
class IndexResult:
    """Outcome of one indexing pass."""
    documents: list[Document] = field(default_factory=list)
    errors: list[IndexationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def glob_to_regex(pattern: str) -> re.Pattern:
    """
    Compile a vault-relative glob into a regex over POSIX paths.

    ``**`` spans any number of directories (including none when followed
    by ``/``); ``*`` and ``?`` stay inside one path segment.
    """
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(out), re.DOTALL)


def resolve_in_vault(root: Path, rel_path: str) -> Path:
    """
    Resolve a vault-relative path, refusing anything outside the vault.

    Symlinks are followed before the check, so a link pointing out of the
    vault is rejected too.

    Raises:
        PathSecurityError: If the resolved path is not under ``root``
    """
    root = Path(root).resolve()
    candidate = (root / rel_path).resolve()
    if candidate != root and root not in candidate.parents:
        raise PathSecurityError(rel_path)
    return candidate


class VaultIndexer:
    """
    Scans a vault directory and parses every matching note.

    Args:
        root: Vault root directory
        index_patterns: Globs (relative to root) selecting notes to index
        exclude_patterns: Globs removing files from the selection
        max_file_size: Files larger than this many bytes are skipped
        max_workers: Upper bound on concurrent file reads
    """

    def __init__(
        self,
        root: Path,
        index_patterns: Iterable[str],
        exclude_patterns: Iterable[str] = (),
        max_file_size: int = 10 * 1024 * 1024,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.root = Path(root)
        self.index_patterns = list(index_patterns)
        self.exclude_patterns = list(exclude_patterns)
        self.max_file_size = max_file_size
        self.max_workers = max(1, max_workers)
        self._exclude_res = [glob_to_regex(p) for p in self.exclude_patterns]

    def is_excluded(self, rel_path: str) -> bool:
        return any(rx.fullmatch(rel_path) for rx in self._exclude_res)

    def list_files(self) -> list[str]:
        """Vault-relative POSIX paths of every candidate file, sorted."""
        found: set[str] = set()
        for pattern in self.index_patterns:
            for path in self.root.glob(pattern):
                if not path.is_file():
                    continue
                rel = path.relative_to(self.root).as_posix()
                if not self.is_excluded(rel):
                    found.add(rel)
        return sorted(found)

    def index(self) -> IndexResult:
        """
        Read and parse every candidate file.

        Returns:
            IndexResult with documents sorted by path and one error per
            file that could not be indexed
        """
        start = time.monotonic()
        if not self.root.is_dir():
            logger.warning("Vault directory does not exist: %s", self.root)
            return IndexResult()

        files = self.list_files()
        logger.info("Indexing %d files from %s", len(files), self.root)

        result = IndexResult()
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            for outcome in pool.map(self._load, files):
                if isinstance(outcome, IndexationError):
                    logger.warning("Skipped %s: %s", outcome.path, outcome.reason)
                    result.errors.append(outcome)
                else:
                    result.documents.append(outcome)

        result.documents.sort(key=lambda d: d.path)
        logger.info(
            "Indexed %d notes with %d errors in %.2fs",
            len(result.documents), len(result.errors), time.monotonic() - start,
        )
        return result

    def _load(self, rel_path: str) -> Union[Document, IndexationError]:
        try:
            path = resolve_in_vault(self.root, rel_path)
            size = path.stat().st_size
            if size > self.max_file_size:
                return IndexationError(
                    rel_path,
                    f"file is {size} bytes, larger than the {self.max_file_size} byte limit",
                )
            text = path.read_text(encoding="utf-8")
            return parse_note(text, rel_path)
        except IndexationError as e:
            return e
        except PathSecurityError as e:
            return IndexationError(rel_path, str(e))
        except UnicodeDecodeError as e:
            return IndexationError(rel_path, f"not valid UTF-8: {e.reason}")
        except OSError as e:
            return IndexationError(rel_path, f"unreadable: {e.strerror or e}")
