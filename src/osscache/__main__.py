"""Entry point for running osscache as a module."""

from .cli import app


def main() -> None:
    """Main entry point for the osscache CLI application."""
    app()


if __name__ == "__main__":
    main()
