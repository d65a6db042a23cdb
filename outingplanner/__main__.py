"""Module entrypoint for `python -m outingplanner`."""

from outingplanner.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
