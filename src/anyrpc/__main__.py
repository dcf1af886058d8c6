"""Entry point for `python -m anyrpc`."""

from .cli import main

if __name__ == "__main__":
    main()
