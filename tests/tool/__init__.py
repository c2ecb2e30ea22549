"""Test helpers for flux-bootstrap tools."""

from flux_bootstrap.tool.flux_bootstrap import main


def run_main(args: list[str]) -> int:
    """Run the command line tool and return its exit code."""
    try:
        main(args)
    except SystemExit as err:
        return int(err.code or 0)
    return 0
