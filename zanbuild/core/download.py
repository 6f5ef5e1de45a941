"""
Multi-transport download manager.

Mirrors and certificate-sensitive hosts behave differently across TLS and
proxy environments, so a single HTTP client is not enough. The Downloader
tries an ordered list of transports until one leaves a non-empty file at
the destination:

- bits: Windows Background Intelligent Transfer Service via PowerShell
- requests: streaming GET with TLS verification and progress reporting
- requests-insecure: the same with certificate verification disabled
- urllib: the standard library's low-level client
- curl: the external command-line tool

A failed attempt never leaves a partial file behind.
"""

import logging
import shutil
import time
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from urllib.parse import urlparse

import requests
import urllib3

from zanbuild.core.exceptions import DownloadError
from zanbuild.core.fallback import (
    StrategiesExhausted,
    Strategy,
    StrategyUnavailable,
    first_success,
)
from zanbuild.core.process import IS_WINDOWS, run_command

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192
USER_AGENT = "zanbuild"


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int
    percentage: float
    speed_bps: float  # bytes per second
    eta_seconds: float  # estimated time remaining

    def __str__(self) -> str:
        """Format progress for display."""
        return format_progress(self)


class EmptyDownloadError(Exception):
    """A transport reported success but produced no data."""

    pass


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 50.0, 1048576, 50)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s ETA: 50s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    mb_total = progress.total_bytes / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    if progress.total_bytes > 0:
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s "
            f"ETA: {progress.eta_seconds:.0f}s"
        )
    else:
        return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"


def _log_progress(progress: DownloadProgress) -> None:
    logger.debug(format_progress(progress))


# ============================================================================
# Transports
# ============================================================================


def _stream_response(
    response: requests.Response,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]],
) -> None:
    """Write a streaming response to disk, reporting progress."""
    content_length = response.headers.get("content-length")
    total_size = int(content_length) if content_length else 0

    downloaded = 0
    start_time = time.time()
    last_progress_time = start_time

    with open(destination, "wb") as f:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            f.write(chunk)
            downloaded += len(chunk)

            # Report progress at most twice per second
            current_time = time.time()
            if progress_callback and (
                current_time - last_progress_time >= 0.5 or downloaded == total_size
            ):
                elapsed = current_time - start_time
                speed = downloaded / elapsed if elapsed > 0 else 0
                remaining = total_size - downloaded if total_size > 0 else 0
                progress_callback(
                    DownloadProgress(
                        bytes_downloaded=downloaded,
                        total_bytes=total_size if total_size > 0 else downloaded,
                        percentage=(downloaded / total_size * 100)
                        if total_size > 0
                        else 0,
                        speed_bps=speed,
                        eta_seconds=remaining / speed if speed > 0 else 0,
                    )
                )
                last_progress_time = current_time


def _requests_transport(verify: bool, timeout: int = 60):
    def fetch(url: str, destination: Path) -> None:
        response = requests.get(
            url,
            stream=True,
            timeout=timeout,
            allow_redirects=True,
            verify=verify,
            headers={"User-Agent": USER_AGENT},
        )
        try:
            response.raise_for_status()
            _stream_response(response, destination, _log_progress)
        finally:
            response.close()

    return fetch


def fetch_with_requests(url: str, destination: Path) -> None:
    """Download with requests and full certificate verification."""
    _requests_transport(verify=True)(url, destination)


def fetch_with_requests_insecure(url: str, destination: Path) -> None:
    """Download with requests, skipping certificate verification."""
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    _requests_transport(verify=False)(url, destination)


def fetch_with_urllib(url: str, destination: Path, timeout: int = 60) -> None:
    """Download with the standard library HTTP client."""
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    with urllib.request.urlopen(request, timeout=timeout) as response:
        with open(destination, "wb") as f:
            shutil.copyfileobj(response, f, CHUNK_SIZE)


def fetch_with_bits(url: str, destination: Path) -> None:
    """Download with BITS (Windows only)."""
    powershell = shutil.which("powershell") or shutil.which("pwsh")
    if not IS_WINDOWS or not powershell:
        raise StrategyUnavailable("BITS requires Windows PowerShell")

    script = (
        f"Start-BitsTransfer -Source '{url}' -Destination '{destination}' "
        "-ErrorAction Stop"
    )
    result = run_command(
        [powershell, "-NoProfile", "-NonInteractive", "-Command", script],
        capture_output=True,
    )
    if result.returncode != 0:
        raise RuntimeError(f"Start-BitsTransfer failed: {result.stderr.strip()}")


def fetch_with_curl(url: str, destination: Path) -> None:
    """Download with the curl command-line tool."""
    curl = shutil.which("curl")
    if not curl:
        raise StrategyUnavailable("curl not found in PATH")

    result = run_command(
        [curl, "--fail", "--location", "--silent", "--show-error",
         "--output", destination, url],
        capture_output=True,
    )
    if result.returncode != 0:
        raise RuntimeError(
            f"curl exited with {result.returncode}: {result.stderr.strip()}"
        )


def default_transports() -> List[Strategy]:
    """Transport strategies in the order they are tried."""
    return [
        Strategy("bits", fetch_with_bits),
        Strategy("requests", fetch_with_requests),
        Strategy("requests-insecure", fetch_with_requests_insecure),
        Strategy("urllib", fetch_with_urllib),
        Strategy("curl", fetch_with_curl),
    ]


# ============================================================================
# Downloader
# ============================================================================


def validate_url(url: str) -> None:
    """
    Reject anything that is not an absolute http(s) URL.

    Raises:
        ValueError: If the URL is malformed
    """
    if not url:
        raise ValueError("URL cannot be empty")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Not a valid download URL: {url}")


def _discard(path: Path) -> None:
    if path.exists():
        path.unlink()


class Downloader:
    """
    Fetch remote files using an ordered list of transports.

    Attributes:
        transports: Strategies tried in order for every download
    """

    def __init__(self, transports: Optional[Sequence[Strategy]] = None):
        self.transports = (
            list(transports) if transports is not None else default_transports()
        )

    def fetch(self, url: str, destination: Path) -> Path:
        """
        Download url to destination.

        Args:
            url: http(s) URL to download
            destination: Local file path (parent created if absent)

        Returns:
            Path to the downloaded, non-empty file

        Raises:
            ValueError: If url is malformed
            DownloadError: If every transport failed; chained to the last cause
        """
        validate_url(url)
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Downloading {url}")

        def attempt(transport: Strategy) -> Strategy:
            _discard(destination)
            transport(url, destination)
            if not destination.exists() or destination.stat().st_size == 0:
                raise EmptyDownloadError(f"{transport.name} produced an empty file")
            return transport

        wrapped = [Strategy(t.name, lambda t=t: attempt(t)) for t in self.transports]

        try:
            name, _ = first_success(
                wrapped, on_failure=lambda strategy, error: _discard(destination)
            )
        except StrategiesExhausted as e:
            _discard(destination)
            raise DownloadError(
                url, f"Failed to download {url}: {e}"
            ) from e.last_error

        logger.debug(f"Downloaded {destination.name} via {name}")
        return destination

    def fetch_first(self, urls: Sequence[str], destination: Path) -> Path:
        """
        Download from the first mirror that works.

        Raises:
            DownloadError: From the last mirror, if all of them failed
        """
        if not urls:
            raise ValueError("No URLs given")

        last_error: Optional[DownloadError] = None
        for url in urls:
            try:
                return self.fetch(url, destination)
            except ValueError as e:
                logger.warning(f"Skipping invalid mirror: {e}")
                last_error = DownloadError(url, str(e))
            except DownloadError as e:
                logger.warning(f"Mirror failed: {url}")
                last_error = e
        assert last_error is not None
        raise last_error
