"""Process-level helpers: configuration loading and logging setup."""
