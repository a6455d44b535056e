"""Entry point for `python -m inbox_agent`."""

from inbox_agent.cli.commands import app

if __name__ == "__main__":
    app()
