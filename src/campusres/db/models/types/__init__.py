from .json_type import JSON
from .utcdatetime import UTCDateTime

__all__ = ('JSON', 'UTCDateTime')
