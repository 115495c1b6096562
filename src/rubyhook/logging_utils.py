from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(debug: bool = False) -> None:
    """Send application and uvicorn logs to stderr through rich."""
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=debug,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)
