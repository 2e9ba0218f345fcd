"""
Global settings for RC Practice Zone.
Reading-comprehension drills scored CAT-style and compared with category statistics.
"""

import os

# Page
PAGE_TITLE = "CAT RC Practice Zone"
PAGE_ICON = "📖"

# Palette
RC_PRIMARY = "#3F51B5"          # Indigo
RC_PRIMARY_HOVER = "#303F9F"
RC_HEADING = "#1A237E"
RC_TIMER = "#C62828"
RC_CARD_BG = "#FFFFFF"
RC_CARD_SHADOW = "0 2px 8px rgba(0,0,0,0.06)"

# Text generation service
API_KEY_ENV = "OPENAI_API_KEY"
MODEL_TEXT = os.getenv("RC_MODEL_NAME", "gpt-4o").strip() or "gpt-4o"

# Test shape
QUESTIONS_PER_PASSAGE = 5
PASSAGE_SEPARATOR = "\n\n---\n\n"
MAX_PASSAGES = 4
DEFAULT_TIME_BUDGET_SECONDS = 15 * 60
PASSAGE_TIME_BUDGETS = {
    1: 15 * 60,
    2: 2 * 12 * 60,
    3: 3 * 10 * 60,
    4: 35 * 60,
}

# Scoring (shared by the live session and the offline copy)
POINTS_CORRECT = 3
POINTS_INCORRECT = -1
POINTS_UNATTEMPTED = 0
TICK_INTERVAL_SECONDS = 1

# Persistence
RESULTS_STORE_KEY = "catRcTestResults"

# Comparative analytics
USER_CATEGORY = "OBC"
COMPARISON_SECTION = "VARC"
TOTAL_MARKS_PER_SECTION = 66
TOTAL_MARKS_OVERALL = 198
CAT_SECTIONAL_STATS = {
    "GENERAL": {
        "VARC": {"mean": 36.0, "std": 9.98},
        "LRDI": {"mean": 34.93, "std": 10.0},
        "QA": {"mean": 33.99, "std": 10.03},
        "TOTAL": {"mean": 104.92, "std": 17.3},
    },
    "OBC": {
        "VARC": {"mean": 31.94, "std": 9.0},
        "LRDI": {"mean": 32.0, "std": 9.01},
        "QA": {"mean": 31.03, "std": 9.02},
        "TOTAL": {"mean": 94.98, "std": 15.55},
    },
    "SC": {
        "VARC": {"mean": 28.97, "std": 8.01},
        "LRDI": {"mean": 28.0, "std": 8.03},
        "QA": {"mean": 28.03, "std": 7.99},
        "TOTAL": {"mean": 85.0, "std": 13.87},
    },
    "ST": {
        "VARC": {"mean": 27.03, "std": 8.0},
        "LRDI": {"mean": 25.95, "std": 8.01},
        "QA": {"mean": 26.97, "std": 8.03},
        "TOTAL": {"mean": 79.95, "std": 13.92},
    },
}

# Offline export
OFFLINE_BUNDLE_FILENAME = "cat_rc_practice_test.html"
OFFLINE_PAGE_TITLE = "CAT RC Practice Test (Offline)"
