"""Module entry point for `python -m behave_rerun`."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
