"""Allow running tsm as ``python -m tsm``."""

from tsm.cli import main

if __name__ == "__main__":
    main(prog_name="tsm")
