"""Entry point for ``python -m uomi_bot``."""

from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
