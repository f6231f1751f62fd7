"""Allow ``python -m otpclock``."""

from otpclock.cli import main

if __name__ == "__main__":
    main()
