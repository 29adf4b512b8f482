"""cost-saver: temporarily scale down AWS resources and restore them later."""

__version__ = "0.1.0"
