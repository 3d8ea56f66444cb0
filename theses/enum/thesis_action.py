"""theses/enum/thesis_action.py
============================

Canonical action identifiers used by the permission policy.

Services should use these ids instead of hardcoding strings.
"""
from __future__ import annotations

from enum import Enum


class ThesisAction(str, Enum):
    """Supported thesis actions."""

    # Topic negotiation
    SUBMIT_TOPIC = "submit_topic"
    REVIEW_TOPIC = "review_topic"
    PROPOSE_TOPIC = "propose_topic"
    RESPOND_TOPIC = "respond_topic"

    # Supervisor requests
    REQUEST_SUPERVISOR = "request_supervisor"
    RESPOND_SUPERVISOR_REQUEST = "respond_supervisor_request"
    CANCEL_SUPERVISOR_REQUEST = "cancel_supervisor_request"

    # Thesis lifecycle
    SUBMIT_THESIS = "submit_thesis"
    VIEW_THESIS = "view_thesis"
    DOWNLOAD_THESIS = "download_thesis"
    DELETE_THESIS = "delete_thesis"

    # Relationship graph
    ASSIGN = "assign"

    # Review cycle
    SUBMIT_REVIEW = "submit_review"
    REQUEST_RE_REVIEW = "request_re_review"
    SIGN_REVIEW = "sign_review"
    COUNTERSIGN_REVIEW = "countersign_review"
    EVALUATE = "evaluate"
    CHECK_PLAGIARISM = "check_plagiarism"

    # Administration
    APPROVE_REVIEWER = "approve_reviewer"
    DELETE_USER = "delete_user"
    LIST_THESES = "list_theses"
