"""
Application-wide constants for Hall Pass Hub.
"""

# Display labels for each pass type, shown in the active list and reports
PASS_TYPE_LABELS = {
    "general": "General Hall Pass",
    "nurse": "Nurse",
    "discipline": "Discipline",
    "restroom": "Restroom",
    "office": "Office",
    "custom": "Custom",
}

# Active passes expiring within this window count as "expiring soon"
EXPIRING_SOON_MINUTES = 5

DEFAULT_RESET_TIMEZONE = "America/Los_Angeles"

# Upper bound for the optional soft deadline on a new pass
MAX_EXPIRES_IN_MINUTES = 240

# Ids must fit a signed 64-bit database integer
MAX_DB_INTEGER = 2 ** 63 - 1
MIN_DB_INTEGER = -(2 ** 63)
