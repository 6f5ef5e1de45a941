"""
Entry point for running zanbuild as a module.

Usage: python -m zanbuild [options]
"""

from zanbuild.cli.parser import main

if __name__ == "__main__":
    main()
