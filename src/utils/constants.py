"""
Constants for the Cake Order Tracker application.

This module defines system-wide constants including:
- Application metadata
- Order identity format
- Production ledger wording
- Validation limits
- Database settings
"""

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Cake Order Tracker"
APP_VERSION = "0.1.0"
DATABASE_VERSION = "1.0"

# ============================================================================
# Order Identity
# ============================================================================

# Order ids look like "05-25-001": month, two-digit year, sequence in month
ORDER_ID_DATE_FORMAT = "%m-%y"
ORDER_SEQUENCE_WIDTH = 3

# ============================================================================
# Production
# ============================================================================

DEFAULT_CANCELLED_ACK_NOTE = "Task cancelled and acknowledged by baker"
DEFAULT_MANUAL_CANCEL_REASON = "Cancelled by baker"
MANUAL_DELETE_REASON = "Manual task deleted by baker"
MANUAL_DELETE_NOTE = "Task deleted manually"

# ============================================================================
# Validation Constants
# ============================================================================

MAX_CAKE_TIERS = 5
MAX_NAME_LENGTH = 200
MAX_SPEC_LENGTH = 100
MAX_NOTES_LENGTH = 2000

# ============================================================================
# Database Constants
# ============================================================================

DATABASE_FILENAME = "cake_tracker.db"
DEFAULT_DB_TIMEOUT = 30
