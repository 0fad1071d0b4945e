"""haikubot - answers Japanese haiku and tanka posted on Bluesky.

Reads the relay firehose, filters newly created posts, runs a mora-counting
predicate and quote-posts every match with bounded retry.

Note: Imports are lazy so importing the package does not load the network stack.
Use explicit imports: ``from haikubot.supervisor import Supervisor``
"""

__version__ = "0.1.0"

__all__ = ["__version__", "Supervisor", "Settings"]


def __getattr__(name: str):
    """Lazy import of the main entry points."""
    if name == "Supervisor":
        from .supervisor import Supervisor

        return Supervisor
    if name == "Settings":
        from .config import Settings

        return Settings
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
