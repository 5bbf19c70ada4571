"""Allow ``python -m udpscrape``."""

from udpscrape.cli import main

if __name__ == "__main__":
    main()
