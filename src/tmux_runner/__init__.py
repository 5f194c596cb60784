"""Drive a tmux session through a chain of output processors."""

__version__ = "0.1.0"
