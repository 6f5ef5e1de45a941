"""
Post-extract layout normalization.

Archives rarely unpack into the directory name a build wants. Each rule here
moves some part of a staging directory into a tool's canonical install
directory, or raises LayoutMismatch when the staging tree does not have the
shape it expects. ToolSpecs list rules in order; the provisioner keeps the
first that applies, so content-scanning fallbacks go last.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from zanbuild.core.fallback import StrategyUnavailable
from zanbuild.core.filesystem import move_tree

logger = logging.getLogger(__name__)

DirPredicate = Callable[[Path], bool]


class LayoutMismatch(StrategyUnavailable):
    """The staging tree does not match what a layout rule expects."""

    pass


def named(name: str) -> DirPredicate:
    """Predicate: directory is literally called name (case-insensitive)."""

    def predicate(path: Path) -> bool:
        return path.name.lower() == name.lower()

    predicate.__name__ = f"named({name!r})"
    return predicate


def has_subdirs(*names: str) -> DirPredicate:
    """Predicate: directory contains all the given subdirectories."""

    def predicate(path: Path) -> bool:
        return all((path / name).is_dir() for name in names)

    predicate.__name__ = f"has_subdirs{names!r}"
    return predicate


def walk_dirs(root: Path) -> Iterator[Path]:
    """Yield directories under root, shallowest first, sorted by name."""
    level = [root]
    while level:
        next_level = []
        for directory in level:
            children = sorted(
                (p for p in directory.iterdir() if p.is_dir()),
                key=lambda p: p.name.lower(),
            )
            for child in children:
                yield child
            next_level.extend(children)
        level = next_level


@dataclass(frozen=True)
class Flat:
    """Everything in staging belongs directly in the install dir."""

    def __call__(self, staging: Path, install_dir: Path) -> None:
        if not any(staging.iterdir()):
            raise LayoutMismatch(f"Nothing was extracted into {staging}")
        move_tree(staging, install_dir)
        staging.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class SingleRoot:
    """The archive has one top-level directory (e.g. cmake-3.29.3-windows-x86_64)."""

    prefix: str = ""
    into: str = ""

    def __call__(self, staging: Path, install_dir: Path) -> None:
        matches = [
            p
            for p in staging.iterdir()
            if p.is_dir() and p.name.lower().startswith(self.prefix.lower())
        ]
        if len(matches) != 1:
            raise LayoutMismatch(
                f"Expected one top-level directory starting with "
                f"'{self.prefix}', found {len(matches)}"
            )
        target = install_dir / self.into if self.into else install_dir
        logger.debug(f"Renaming {matches[0].name} -> {target}")
        move_tree(matches[0], target)


@dataclass(frozen=True)
class Relocate:
    """A known path inside the archive becomes (part of) the install dir."""

    expected: str
    into: str = ""

    def __call__(self, staging: Path, install_dir: Path) -> None:
        source = staging / self.expected
        if not source.is_dir():
            raise LayoutMismatch(f"Expected path not found: {self.expected}")
        move_tree(source, install_dir / self.into if self.into else install_dir)


@dataclass(frozen=True)
class ScanFor:
    """Search the extracted tree for a directory matching a predicate."""

    predicate: DirPredicate
    into: str = ""

    def find(self, staging: Path) -> Optional[Path]:
        for directory in walk_dirs(staging):
            if self.predicate(directory):
                return directory
        return None

    def __call__(self, staging: Path, install_dir: Path) -> None:
        found = self.find(staging)
        if found is None:
            name = getattr(self.predicate, "__name__", "predicate")
            raise LayoutMismatch(f"No directory matching {name} under {staging}")
        logger.info(
            f"Found {os.path.relpath(found, staging)} by scanning extracted files"
        )
        move_tree(found, install_dir / self.into if self.into else install_dir)
