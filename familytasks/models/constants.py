"""Constants for FamilyTasks.

This module centralizes all magic numbers and default values used throughout the application.
"""

# Estimation
BASE_ESTIMATE_MINUTES = 60
PRIORITY_MULTIPLIERS = {
    "low": 0.7,
    "normal": 1.0,
    "high": 1.5,
}
DEFAULT_CONFIDENCE = 0.7
DEFAULT_PHASE_DISTRIBUTION = {
    "incubation": 0.2,
    "design": 0.3,
    "implementation": 0.4,
    "improvement": 0.1,
}
UNDERESTIMATION_THRESHOLD = 0.6
OVERESTIMATION_THRESHOLD = 0.6
UNDERESTIMATION_SCALE = 1.2
OVERESTIMATION_SCALE = 0.9

# Task classification
FALLBACK_CATEGORY = "other"
TITLE_CATEGORY_KEYWORDS = [
    ("shopping", ("shopping", "buy", "purchase", "groceries")),
    ("chores", ("clean", "tidy", "laundry", "dishes")),
    ("work", ("meeting", "call", "report", "review")),
    ("study", ("study", "learn", "read", "homework")),
]

# Learning
LEARNING_RATE = 0.1
DEFAULT_ACCURACY = 0.7
DEFAULT_PATTERN_RATE = 0.5
LEARNING_HISTORY_CAP = 1000

# Scheduling
MIN_SLOT_MINUTES = 30
MIN_BLOCK_MINUTES = 30
DEFAULT_BUFFER_MINUTES = 15
DEFAULT_CALENDAR_ID = "primary"

# Rescheduling
DEADLINE_EXTENSION_DAYS = 7
BUFFER_REDUCTION_FACTOR = 0.5
MIN_BUFFER_MINUTES = 5
DURATION_REDUCTION_FACTOR = 0.7
RESCHEDULING_HISTORY_CAP = 100
