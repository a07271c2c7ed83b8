"""comment-guard: YouTube comment spam watcher."""

__version__ = "0.1.0"
