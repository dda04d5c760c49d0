"""Audit logging package."""

from cashflow_bot.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
