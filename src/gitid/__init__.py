"""git-id — switch between several git hosting identities on one machine."""

__version__ = "1.0.0"
