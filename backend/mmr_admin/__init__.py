"""mmr-admin — admin console core for a Matrix media repository."""

__version__ = "0.1.0"
