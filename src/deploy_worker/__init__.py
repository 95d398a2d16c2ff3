"""Background worker that deploys and removes SST stacks from Git repositories."""

__version__ = "0.1.0"
