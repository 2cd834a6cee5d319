# Utils package
from .logging_utils import setup_logging, get_logger, LogTimer
from .audit import audit, diff_changes, AuditWriteResult

__all__ = ['setup_logging', 'get_logger', 'LogTimer', 'audit', 'diff_changes', 'AuditWriteResult']
