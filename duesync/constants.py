"""
Constants for task status, task types and sync bookkeeping.
"""
from __future__ import annotations

# Task status (incomplete -> in_progress -> complete)
TASK_STATUS_INCOMPLETE = "incomplete"
TASK_STATUS_IN_PROGRESS = "in_progress"
TASK_STATUS_COMPLETE = "complete"
TASK_STATUSES = (TASK_STATUS_INCOMPLETE, TASK_STATUS_IN_PROGRESS, TASK_STATUS_COMPLETE)

# Task type tags
TASK_TYPE_ASSIGNMENT = "assignment"
TASK_TYPE_QUIZ = "quiz"
TASK_TYPE_EXAM = "exam"
TASK_TYPE_HOMEWORK = "homework"
TASK_TYPE_LAB = "lab"
TASK_TYPES = (TASK_TYPE_ASSIGNMENT, TASK_TYPE_QUIZ, TASK_TYPE_EXAM, TASK_TYPE_HOMEWORK, TASK_TYPE_LAB)

# Submission workflow states that count as "handed in"
SUBMITTED_STATES = frozenset({"submitted", "graded", "pending_review"})

# Category colors
DEFAULT_CATEGORY_COLOR = "#3498db"
DEFAULT_UNASSIGNED_COLOR = "#a78b71"
CATEGORY_PALETTE = (
    "#228be6",
    "#fa5252",
    "#fab005",
    "#15aabf",
    "#e64980",
    "#fd7e14",
    "#20c997",
)

# Key-value store keys
PENDING_CACHE_KEY = "canvas_pending_items"
LAST_FETCH_KEY = "canvas_last_fetch"

# Optimistic placeholders
TEMP_ID_PREFIX = "temp-"
RESTORE_KEY_PREFIX = "restore-"

# Defaults
DEFAULT_UNDO_SECONDS = 7.0
DEFAULT_FETCH_CONCURRENCY = 5
DEFAULT_SUBMISSION_CONCURRENCY = 4
DEFAULT_FETCH_INTERVAL_MINUTES = 60
DEFAULT_CACHE_TTL_SECONDS = 300
PAGE_SIZE = 100

# Duplicate detection rules
RULE_EXTERNAL_ID = "external_id"
RULE_TITLE_DATE = "title_date"
RULE_NAME = "name"
