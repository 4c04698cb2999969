"""
Checkpoint Artifact Fetcher
===========================

Downloads the MASt3R checkpoints into the checkpoint directory, skipping any
file that is already there.

SKIP-IF-PRESENT POLICY:
----------------------
A file with the expected name at the destination is treated as complete. No
size or checksum comparison is made; the upstream host publishes no digests.
To force a re-download, delete the file.

Downloads are written to "<name>.part" and renamed into place only after the
last byte arrives, so an interrupted transfer is never mistaken for a
complete checkpoint on the next run.

FAILURES:
--------
HTTP and connection errors are fatal (ArtifactFetchError). There is no retry
here; rerunning the provisioner resumes with the files still missing.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Protocol

import requests
from tqdm import tqdm

from .config import DOWNLOAD_CHUNK_SIZE, DOWNLOAD_TIMEOUT
from .errors import ArtifactFetchError

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


# =============================================================================
# Types
# =============================================================================


@dataclass(frozen=True)
class ArtifactSpec:
    """A file name under a fixed base URL."""
    filename: str
    base_url: str

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.filename}"

    def destination(self, directory: Path) -> Path:
        return Path(directory) / self.filename


@dataclass
class FetchReport:
    """Which artifacts were downloaded and which were already present."""
    directory: Path
    downloaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class FileStore(Protocol):
    """Filesystem operations the fetcher needs."""

    def exists(self, path: Path) -> bool:
        ...

    def ensure_dir(self, path: Path) -> None:
        ...

    def open_write(self, path: Path) -> BinaryIO:
        ...

    def replace(self, src: Path, dst: Path) -> None:
        ...

    def remove(self, path: Path) -> None:
        ...


class LocalFileStore:
    """FileStore on the local filesystem."""

    def exists(self, path: Path) -> bool:
        return Path(path).is_file()

    def ensure_dir(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def open_write(self, path: Path) -> BinaryIO:
        return open(path, "wb")

    def replace(self, src: Path, dst: Path) -> None:
        os.replace(src, dst)

    def remove(self, path: Path) -> None:
        Path(path).unlink(missing_ok=True)


def _content_length(headers) -> Optional[int]:
    """Content-Length as a positive int, or None when absent or malformed."""
    try:
        total = int(headers.get("Content-Length") or 0)
    except (TypeError, ValueError):
        return None
    return total if total > 0 else None


def build_artifact_specs(filenames: Iterable[str], base_url: str) -> List[ArtifactSpec]:
    return [ArtifactSpec(filename=name, base_url=base_url) for name in filenames]


# =============================================================================
# Fetcher
# =============================================================================


class ArtifactFetcher:
    """
    Skip-if-present downloader.

    Args:
        file_store: Filesystem access (LocalFileStore by default)
        session: requests.Session to use (a new one by default)
        timeout: Connect/read timeout in seconds per request
        chunk_size: Bytes per streamed chunk
        show_progress: Draw a tqdm bar per download
    """

    def __init__(
        self,
        file_store: Optional[FileStore] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DOWNLOAD_TIMEOUT,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
        show_progress: bool = True,
    ):
        self.file_store = file_store or LocalFileStore()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.show_progress = show_progress

    def fetch_all(self, specs: Iterable[ArtifactSpec], directory: Path) -> FetchReport:
        """Ensure directory exists, then fetch each missing artifact in order."""
        directory = Path(directory)
        self.file_store.ensure_dir(directory)
        report = FetchReport(directory=directory)

        for spec in specs:
            if self.file_store.exists(spec.destination(directory)):
                logger.info(f"  [SKIP] {spec.filename} already exists, skipping...")
                report.skipped.append(spec.filename)
                continue

            logger.info(f"  Downloading {spec.filename}...")
            self.fetch(spec, directory)
            report.downloaded.append(spec.filename)

        return report

    def fetch(self, spec: ArtifactSpec, directory: Path) -> Path:
        """
        Download a single artifact, unconditionally.

        Raises:
            ArtifactFetchError: on HTTP, connection or write errors
        """
        destination = spec.destination(directory)
        partial = destination.with_name(destination.name + PARTIAL_SUFFIX)

        try:
            response = self.session.get(spec.url, stream=True, timeout=self.timeout)
            try:
                response.raise_for_status()
                total = _content_length(response.headers)
                with self.file_store.open_write(partial) as fh, tqdm(
                    total=total,
                    unit="B",
                    unit_scale=True,
                    unit_divisor=1024,
                    desc=spec.filename,
                    file=sys.stdout,
                    leave=False,
                    disable=not self.show_progress,
                ) as pbar:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            fh.write(chunk)
                            pbar.update(len(chunk))
            finally:
                response.close()

            self.file_store.replace(partial, destination)

        except requests.RequestException as e:
            self._discard(partial)
            raise ArtifactFetchError(
                spec.filename, spec.url, f"Failed to download {spec.url}: {e}"
            ) from e
        except OSError as e:
            self._discard(partial)
            raise ArtifactFetchError(
                spec.filename, spec.url, f"Failed to write {destination}: {e}"
            ) from e

        logger.info(f"  [OK] {spec.filename}")
        return destination

    def _discard(self, partial: Path):
        try:
            self.file_store.remove(partial)
        except OSError as e:
            logger.warning(f"  [!] Could not remove partial download {partial}: {e}")
