"""Payment-channel contract construction for Bitcoin: scripts, transactions, revocation keys."""

__version__ = "0.1.0"
