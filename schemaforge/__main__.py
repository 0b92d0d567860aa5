# File: schemaforge/__main__.py
"""
NexaFlow SchemaForge - Module entry point.

Allows running the compiler directly via::

    python -m schemaforge -m schemaforge.yaml -o ./generated
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from schemaforge.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
