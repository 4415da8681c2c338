from .auto_delete import DeletionJobs

__all__ = ['DeletionJobs']
