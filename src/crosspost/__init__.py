"""crosspost: republish one source item to several publishing targets."""

__version__ = "0.1.0"
