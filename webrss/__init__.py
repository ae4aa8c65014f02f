"""Poll Atom and RSS feeds and serve the most recent entries over HTTP."""

__version__ = "0.1.0"
