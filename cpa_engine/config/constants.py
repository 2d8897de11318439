"""
Application constants.

Centralized constants for the distribution engine.
"""

from decimal import Decimal

# ========================================================================
# CONFIG SERVICE
# ========================================================================

# Keys consumed from the config service
CPA_LEVEL_AMOUNTS_KEY = "cpa_level_amounts"
MLM_SETTINGS_KEY = "mlm_settings"
CPA_VALIDATION_RULES_KEY = "cpa_validation_rules"
SYSTEM_SETTINGS_KEY = "system_settings"

# Keys served by dedicated endpoints instead of /config/{key}/value
CONFIG_KEY_ENDPOINTS = {
    CPA_LEVEL_AMOUNTS_KEY: "/cpa/level-amounts",
    CPA_VALIDATION_RULES_KEY: "/cpa/validation-rules",
}

CONFIG_SERVICE_TIMEOUT = 30.0  # HTTP timeout (seconds)
CONFIG_CACHE_TTL_SECONDS = 300  # 5 minutes

# Push channel reconnection
CONFIG_WS_RECONNECT_DELAY = 5.0  # Base delay for exponential backoff (seconds)
CONFIG_WS_MAX_BACKOFF_SECONDS = 300.0  # Upper bound for a single delay
CONFIG_WS_MAX_RECONNECT_ATTEMPTS = 10

# ========================================================================
# DATABASE
# ========================================================================

DATABASE_OPERATION_TIMEOUT = 30.0  # Single unit of work (seconds)

# ========================================================================
# DISTRIBUTION
# ========================================================================

# Level of the participant that generated the event
ORIGINATOR_LEVEL = 1

DEFAULT_CURRENCY = "BRL"
DEFAULT_MAX_HIERARCHY_LEVELS = 5
DEFAULT_MINIMUM_AMOUNT = Decimal("0.01")
DEFAULT_VALIDATION_RULE_ID = "default"

TRANSACTION_ID_PREFIX = "CPA"

# ========================================================================
# BATCH PROCESSING
# ========================================================================

DEFAULT_BATCH_SIZE = 100
BATCH_LOCK_KEY = "cpa_batch_processing"
BATCH_LOCK_TIMEOUT = 300  # Lock timeout in seconds
BATCH_VALIDATION_RULE_ID = "auto_processing"

# ========================================================================
# AUDIT
# ========================================================================

OPERATION_CPA_DISTRIBUTION = "CPA_DISTRIBUTION"
ENTITY_CPA = "CPA"
AUDIT_CREATED_BY = "system"
