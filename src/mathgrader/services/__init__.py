"""
Services module for background processing.

Queue backends and the grading worker that drains them.
"""

from mathgrader.services.worker import GradingWorker, InMemoryQueue, QueueBackend, WorkerOutcome

__all__ = ["GradingWorker", "InMemoryQueue", "QueueBackend", "WorkerOutcome"]
