"""
SessionSeal CLI.

Usage:
    sessionseal keygen
    sessionseal sign <session-id> --key <key>
    sessionseal verify <token> --key <key>
    sessionseal serve --config sessionseal.yaml
"""

from sessionseal import __version__

__cli_name__ = "sessionseal"


def main():
    """Wrapper to avoid eager import of __main__ which causes warnings with -m."""
    from .__main__ import main as _main
    return _main()


__all__ = ["__version__", "__cli_name__", "main"]
