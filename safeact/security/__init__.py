"""Security layer — Capability sandbox, approval gate, audit trail."""

from safeact.security.approval import ApprovalDecision, ApprovalGate, ApprovalHandler, PendingApproval
from safeact.security.audit import AuditStore, AuditTrail, MemoryAuditStore, SQLiteAuditStore
from safeact.security.factory import build_sandbox
from safeact.security.models import (
    APPROVAL_TOKEN_KEY,
    Allowed,
    ApprovalRequest,
    AuditDecision,
    AuditEntry,
    AuditResult,
    CapabilityResult,
    DecisionLevel,
    Denied,
    PermissionDecision,
    PermissionRequest,
)
from safeact.security.sandbox import CapabilitySandbox, SandboxExecutor

__all__ = [
    "APPROVAL_TOKEN_KEY",
    "Allowed",
    "Denied",
    "DecisionLevel",
    "PermissionDecision",
    "PermissionRequest",
    "ApprovalRequest",
    "AuditDecision",
    "AuditEntry",
    "AuditResult",
    "CapabilityResult",
    "AuditStore",
    "AuditTrail",
    "MemoryAuditStore",
    "SQLiteAuditStore",
    "ApprovalDecision",
    "ApprovalGate",
    "ApprovalHandler",
    "PendingApproval",
    "CapabilitySandbox",
    "SandboxExecutor",
    "build_sandbox",
]
