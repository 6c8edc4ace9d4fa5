"""Allow ``python -m equilibrium``."""

from .adapters.inbound.cli.commands import app

app()
