"""Queue compiler regression bisections over HTTP and store their results in SQLite."""

__version__ = "0.1.0"