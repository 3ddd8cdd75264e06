"""suji: a static site generator built on the `stagekit` stage scheduler."""

__version__ = "0.1.0"
