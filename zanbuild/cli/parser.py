"""
zanbuild command-line interface.

    zanbuild [--platform {x64}] [--configuration {Debug,Release}]
             [--clean] [--skip-deps]

Everything else comes from the optional zanbuild.yaml in the current
directory.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console
from rich.logging import RichHandler

from zanbuild.config.settings import BuildSettings, load_settings
from zanbuild.runner import CONFIGURATIONS, PLATFORMS, BuildOptions, BuildRun

logger = logging.getLogger(__name__)


class CLI:
    """zanbuild command-line interface."""

    def __init__(
        self,
        project_root: Optional[Path] = None,
        settings_loader: Callable[[Optional[Path]], BuildSettings] = load_settings,
        run_factory: Callable[[BuildSettings, BuildOptions], BuildRun] = BuildRun,
    ):
        self.project_root = project_root
        self.settings_loader = settings_loader
        self.run_factory = run_factory
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="zanbuild",
            description="Provision a portable toolchain and build Zandronum for Windows",
        )
        parser.add_argument(
            "--platform",
            choices=PLATFORMS,
            default="x64",
            help="Target platform (default: x64)",
        )
        parser.add_argument(
            "--configuration",
            choices=CONFIGURATIONS,
            default="Release",
            help="Build configuration (default: Release)",
        )
        parser.add_argument(
            "--clean",
            action="store_true",
            help="Remove build/<platform> before building",
        )
        parser.add_argument(
            "--skip-deps",
            action="store_true",
            help="Use already-provisioned tools without downloading anything",
        )
        return parser

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        Invalid choices make argparse exit with status 2.
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run one build.

        Returns:
            0 on success, 1 on any error, 130 when interrupted
        """
        parsed_args = self.parse_args(args)
        options = BuildOptions(
            platform=parsed_args.platform,
            configuration=parsed_args.configuration,
            clean=parsed_args.clean,
            skip_deps=parsed_args.skip_deps,
        )

        self._configure_logging("INFO")
        try:
            settings = self.settings_loader(self.project_root)
            self._configure_logging(settings.log_level)
            self.run_factory(settings, options).run()
        except KeyboardInterrupt:
            logger.error("Build cancelled by user")
            return 130
        except Exception as e:
            logger.exception(f"Build failed: {e}")
            return 1
        return 0

    def _configure_logging(self, level: str) -> None:
        """Send colored log lines to stderr."""
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
            force=True,
        )


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
