"""Allow running portio with ``python -m portio``."""

from portio.cli import main

if __name__ == "__main__":
    main()
