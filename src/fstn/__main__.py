"""Allow running as ``python -m fstn``."""

from .cli import main

if __name__ == "__main__":
    main()
