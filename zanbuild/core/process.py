"""
Subprocess helpers.

Every external tool (7-Zip, curl, vswhere, choco, hg, cmake, MSBuild) is
invoked through run_command so calls block, are logged the same way, and
can be patched in one place by tests.
"""

import logging
import os
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"

Command = Sequence[Union[str, Path]]


def run_command(
    cmd: Command,
    cwd: Optional[Path] = None,
    capture_output: bool = False,
    timeout: Optional[int] = None,
    env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess:
    """
    Run an external command and wait for it to finish.

    The return code is not checked; callers decide what a failure means.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        capture_output: Capture stdout/stderr as text instead of streaming them
        timeout: Timeout in seconds (None waits forever)
        env: Full environment to use (default: inherit)

    Returns:
        Completed process

    Raises:
        FileNotFoundError: If the executable does not exist
        subprocess.TimeoutExpired: If the timeout elapsed
    """
    args: List[str] = [str(part) for part in cmd]
    logger.debug(f"Running: {' '.join(args)}")

    return subprocess.run(
        args,
        cwd=str(cwd) if cwd else None,
        capture_output=capture_output,
        text=True,
        timeout=timeout,
        env=env,
        check=False,
    )


@contextmanager
def scoped_environ(
    prepend_path: Sequence[Path] = (), **overrides: str
) -> Iterator[None]:
    """
    Temporarily override process environment variables.

    Prior values (including absence) are restored on exit, also when the
    body raises.

    Args:
        prepend_path: Directories to put in front of PATH
        **overrides: Variables to set for the duration of the block

    Example:
        >>> with scoped_environ([cmake_bin], LC_ALL="C"):
        ...     run_command(["cmake", "--version"])
    """
    changes = dict(overrides)
    if prepend_path:
        entries = [str(p) for p in prepend_path]
        current = os.environ.get("PATH", "")
        changes["PATH"] = os.pathsep.join(entries + ([current] if current else []))

    saved = {key: os.environ.get(key) for key in changes}
    os.environ.update(changes)
    try:
        yield
    finally:
        for key, value in saved.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
