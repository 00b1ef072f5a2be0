"""Git operations module for repository migration."""

from .operations import GitOperationError, GitOperations

__all__ = ['GitOperationError', 'GitOperations']
