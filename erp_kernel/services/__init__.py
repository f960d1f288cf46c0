"""Kernel service base classes."""

from erp_kernel.services.base import BaseService

__all__ = ["BaseService"]
