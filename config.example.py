# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets (the push API key in particular). Keep them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "CLASSSYNC_APP_NAME": "App display name (default: classsync).",
    "CLASSSYNC_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Paths (gitignored)
    "CLASSSYNC_DATA_DIR": "Local data directory, also holds classsync.log (default: .local/classsync).",
    "CLASSSYNC_DB_PATH": "SQLite document store path (default: <data_dir>/classsync.sqlite3).",
    # Notifications
    "CLASSSYNC_MESSAGE_BUDGET": "Max characters of a stored notification message before '...' (default: 10).",
    # Push delivery
    "CLASSSYNC_PUSH_URL": "Base URL of the push functions host (empty => offline dispatcher, nothing sent).",
    "CLASSSYNC_PUSH_API_KEY": "Bearer key sent to the push function (optional).",
    "CLASSSYNC_PUSH_FUNCTION": "Push function name appended to the URL (default: send-push-notification).",
    "CLASSSYNC_PUSH_CONNECT_TIMEOUT_SECONDS": "Push connect timeout (default: 5).",
    "CLASSSYNC_PUSH_READ_TIMEOUT_SECONDS": "Push read timeout (default: 15).",
    # Console / session
    "CLASSSYNC_CONSOLE_ENABLED": "Enable console connector (true/false, default: true).",
    "CLASSSYNC_ACTOR_ID": "User id the console acts as (default: local-cr).",
    "CLASSSYNC_ACTOR_NAME": "Display name of that user (default: Class Representative).",
    "CLASSSYNC_ACTOR_ROLE": "Role of that user: cr or student (default: cr).",
}
