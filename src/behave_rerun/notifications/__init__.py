"""Observer list exports."""

from .delegate_list import DelegateList

__all__ = ["DelegateList"]
