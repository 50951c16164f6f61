"""Machine queue planner: distributes production orders over machine queues."""

__version__ = "0.1.0"
