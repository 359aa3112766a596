from __future__ import annotations

import sedate

from datetime import datetime
from sqlalchemy.orm import mapped_column
from sqlalchemy.orm import Mapped


class TimestampMixin:
    """ Created and modified timestamps of a record. Deferred, as they are
    only read for display and forensics.

    """

    created: Mapped[datetime] = mapped_column(
        default=sedate.utcnow,
        deferred=True
    )

    modified: Mapped[datetime | None] = mapped_column(
        onupdate=sedate.utcnow,
        deferred=True
    )
