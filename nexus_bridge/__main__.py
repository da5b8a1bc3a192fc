"""
Entry point for `nexus-bridge` and `python -m nexus_bridge`.
"""

import logging
import os
import sys

import typer
from rich.console import Console

from nexus_bridge.cli.app import app
from nexus_bridge.cli.formatters import format_error_with_suggestions
from nexus_bridge.exceptions import NexusBridgeError

log = logging.getLogger(__name__)


def _force_utf8_streams() -> None:
    # Mod names routinely contain characters the Windows console codepage lacks
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass


def main() -> None:
    """Runs the Typer app and turns uncaught errors into a readable panel."""
    if os.name == "nt":
        _force_utf8_streams()

    console = Console(stderr=True)
    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except KeyboardInterrupt:
        console.print(
            "\n[yellow]⚠️  Interrupted. Finished mod folders are kept; "
            "run the same command again to resume.[/yellow]"
        )
        sys.exit(130)
    except NexusBridgeError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n{format_error_with_suggestions(e, {'type': 'Unexpected'})}")
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
