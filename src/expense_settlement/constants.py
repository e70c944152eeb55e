"""Closed value sets shared by the engine."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User roles. Authorization is decided from these alone."""

    APPLICANT = "applicant"
    FINANCE = "finance"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


class ClaimStatus(str, Enum):
    """Expense claim lifecycle states."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    VOID = "void"


class ClaimType(str, Enum):
    ELECTRONIC = "electronic"
    PAPER = "paper"


class ClaimSource(str, Enum):
    MINIAPP_MANUAL = "miniapp_manual"
    PAPER_MANUAL = "paper_manual"
    PAPER_EXCEL = "paper_excel"


class ClaimDecision(str, Enum):
    """Actions available to a reviewer on a submitted claim."""

    APPROVE = "approve"
    REJECT = "reject"
    VOID = "void"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DISABLED = "disabled"


class ImportJobType(str, Enum):
    PAPER_EXCEL = "paper_excel"
    ERP_PULL = "erp_pull"


class ImportJobStatus(str, Enum):
    """Import job status values."""

    PROCESSING = "processing"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class RecordSource(str, Enum):
    """Origin of a period-keyed financial record."""

    MANUAL = "manual"
    ERP_PULL = "erp_pull"
    AUTO = "auto"


class Collection(str, Enum):
    """Document collections known to the store."""

    USERS = "users"
    PROJECTS = "projects"
    EXPENSE_CLAIMS = "expense_claims"
    EXPENSE_ITEMS = "expense_items"
    PROJECT_REVENUE = "project_revenue"
    PROJECT_LABOR_ALLOCATIONS = "project_labor_allocations"
    PROJECT_TAX_FEES = "project_tax_fees"
    COMMISSION_RULES = "commission_rules"
    PROJECT_SETTLEMENTS = "project_settlements"
    IMPORT_JOBS = "import_jobs"
    OPERATION_LOGS = "operation_logs"


PRIVILEGED_ROLES = frozenset({Role.FINANCE, Role.ADMIN})
EDITABLE_CLAIM_STATUSES = frozenset({ClaimStatus.DRAFT, ClaimStatus.REJECTED})

DEFAULT_REJECT_REASON = "Not approved"
DEFAULT_VOID_REASON = "Voided manually"
