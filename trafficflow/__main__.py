"""Allow ``python -m trafficflow``."""

from trafficflow.cli import main

if __name__ == "__main__":
    main()
