"""Entry point for running casechat as a module: python -m casechat"""

from casechat.cli.commands import app

if __name__ == "__main__":
    app()
