from . import databases, pages, workspaces

__all__ = ["databases", "pages", "workspaces"]
