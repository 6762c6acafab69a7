"""Register local GitLab repositories and store their merge request data."""

__version__ = "0.1.0"