"""Default values shared across promptpilot."""

# Models tried in order when no preference is configured
DEFAULT_PREFERRED_MODELS = ("Claude 3.7 Sonnet", "Gemini 2.5", "GPT 4.1")

DEFAULT_AGENT_MODE = "Agent"
DEFAULT_MAX_ITERATIONS = 5
DEFAULT_IDLE_TIMEOUT_SECONDS = 30
DEFAULT_CHECK_AGENT_FREQUENCY_MS = 10_000
DEFAULT_ENSURE_CHAT_FREQUENCY_MS = 300_000
DEFAULT_BRANCH_PREFIX = "feature/"

DEFAULT_TASK_DESCRIPTION = (
    "Starting the automated development workflow. "
    "I will guide you through the task step by step."
)

# Checkpoint pause-wait granularity and restart grace delay (seconds)
PAUSE_POLL_INTERVAL = 0.5
RESTART_GRACE_DELAY = 0.5

# Attempts made when opening the chat surface
OPEN_SURFACE_ATTEMPTS = 5
ENSURE_OPEN_ATTEMPTS = 3
OPEN_SURFACE_INTERVAL = 1.0

AGENT_PREFIX = "@agent "

IDLE_REMINDER_PROMPT = (
    "Are you still working on the task? Please provide an update on your progress."
)
COMPLETION_QUERY = (
    "Have you completed implementing all the features described in the checklist?"
)
MODEL_SWITCH_NOTICE = (
    "Switched to {model} after a model failure. Please continue where you left off."
)
