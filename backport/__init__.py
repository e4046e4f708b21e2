"""Backport CockroachDB pull requests to a release branch."""

__version__ = "1.0.0"
