"""Shared utilities for EmoteStream services."""

from .error_boundary import error_boundary
from .supervisor import RestartStrategy, ServiceConfig, SupervisedService, run_with_supervisor

__all__ = [
    "error_boundary",
    "RestartStrategy",
    "ServiceConfig",
    "SupervisedService",
    "run_with_supervisor",
]
