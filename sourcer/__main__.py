"""Main entry point when executing sourcer as a package.

This allows running the package using python -m sourcer.
"""

from sourcer.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
