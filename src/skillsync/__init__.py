"""skillsync: keep agent skills consistent across source and tool directories."""

__version__ = "0.4.0"
