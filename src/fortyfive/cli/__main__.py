"""CLI entry point for fortyfive.cli module.

Enables execution via: python -m fortyfive.cli
"""

from fortyfive.cli.seed_templates import main

if __name__ == "__main__":
    main()
