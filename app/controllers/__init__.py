"""FastAPI routers acting as controllers in the MVC architecture."""

from . import recordings, reports

__all__ = ["recordings", "reports"]
