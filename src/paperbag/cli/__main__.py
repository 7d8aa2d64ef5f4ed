"""CLI entry point for paperbag.cli module.

Enables execution via: python -m paperbag.cli
"""

from paperbag.cli.recover_images import main

if __name__ == "__main__":
    main()
