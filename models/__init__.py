from .raw_snapshot import RawSnapshot  # noqa: F401
from .change_record import ChangeRecord  # noqa: F401
from .timeline_event import TimelineEvent  # noqa: F401
from .processing_queue import ProcessingQueueEntry  # noqa: F401
from .retry_log import RetryLogEntry  # noqa: F401
from .sync_session import SyncSession  # noqa: F401
