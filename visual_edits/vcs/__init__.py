from .commit import AuditCommitter, is_git_repo

__all__ = ["AuditCommitter", "is_git_repo"]
