"""chaptertrack CLI - operator commands for chapters, resolution, tiers and queues."""

__version__ = "1.0.0"
