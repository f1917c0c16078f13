"""CLI shim for running from a git checkout.

Installed QUITpy uses the package-scoped entrypoint `quitpy.master_cli:main`.
"""

from __future__ import annotations

from quitpy.master_cli import main


if __name__ == "__main__":
    main()
