from __future__ import annotations

import sys
from pathlib import Path

if __package__:
    from .app import run
else:
    # Started as a plain file path; the parent directory holds the package.
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
    from redact_ted.app import run


def main() -> int:
    """Console entry point: open the game window and return its exit code."""
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
