from __future__ import annotations
import os
import sys
from typing import List, Optional


def main(args: Optional[List[str]] = None) -> int:
    """Run the command-line interface and return its exit code."""
    os.environ.setdefault('PYTHONUNBUFFERED', '1')

    from toomanyplugins.plugin_system.cli import main as cli_main

    return cli_main(args)


if __name__ == '__main__':
    sys.exit(main())
