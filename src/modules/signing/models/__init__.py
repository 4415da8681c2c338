from .session import SessionPool, SessionStatus, SessionView, SIGNED_STATUSES

__all__ = ['SessionPool', 'SessionStatus', 'SessionView', 'SIGNED_STATUSES']
