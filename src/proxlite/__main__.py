"""Module entry point for ``python -m proxlite``."""

from proxlite.cli.main import main


if __name__ == "__main__":
    main()
