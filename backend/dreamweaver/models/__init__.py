"""
DreamWeaver Backend — ORM Models
==================================

Importing this package registers every table with Base.metadata, which is
what Alembic autogenerate and the test fixtures rely on.
"""

from dreamweaver.models.bedroom import Bedroom
from dreamweaver.models.sleep_session import SleepSession

__all__ = ["Bedroom", "SleepSession"]
