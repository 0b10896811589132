"""Git synchronization engine for VaultSync."""

from .manager import EngineBusyError, EngineState, SyncManager
from .operations import CommandError, CommandOutput, GitCommandRunner
from .repository_info import GitAvailability, RepositoryStatus
from .scheduler import PeriodicTrigger
from .state import RepositoryStateReader
from .status import Notifier, StatusEvent, StatusLog, SyncPhase
from .utils import CommitResult, Outcome, PullResult, PushResult, SyncResult, create_sync_result

__all__ = [
    'SyncManager',
    'EngineState',
    'EngineBusyError',
    'GitCommandRunner',
    'CommandError',
    'CommandOutput',
    'RepositoryStateReader',
    'RepositoryStatus',
    'GitAvailability',
    'PeriodicTrigger',
    'SyncPhase',
    'StatusEvent',
    'StatusLog',
    'Notifier',
    'Outcome',
    'CommitResult',
    'PullResult',
    'PushResult',
    'SyncResult',
    'create_sync_result'
]
