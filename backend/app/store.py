from typing import Optional

from .realtime import ChangeFeed
from .repositories.projects import ProjectRepository
from .repositories.tasks import TaskRepository


class Store:
    """The two repositories sharing one session factory and one change feed."""

    def __init__(self, session_factory, feed: Optional[ChangeFeed] = None):
        self.session_factory = session_factory
        self.feed = feed or ChangeFeed()
        self.projects = ProjectRepository(session_factory, self.feed)
        self.tasks = TaskRepository(session_factory, self.feed)
