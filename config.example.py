# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Keep them in .env (local, gitignored).

Backend credentials also accept the conventional SUPABASE_* / VITE_SUPABASE_* names,
so an existing web-app .env can be reused as is. TASKMASTER_* names win when both are set.
"""

ENV_VARS = {
    # App / logging
    "TASKMASTER_APP_NAME": "App display name (default: TaskMaster).",
    "TASKMASTER_LOG_LEVEL": "Console logging level (default: INFO; the log file always gets DEBUG).",
    # Backend (required)
    "TASKMASTER_SUPABASE_URL": "Project URL, e.g. https://<ref>.supabase.co (or SUPABASE_URL / VITE_SUPABASE_URL).",
    "TASKMASTER_SUPABASE_ANON_KEY": "Public anon key (or SUPABASE_ANON_KEY / VITE_SUPABASE_ANON_KEY).",
    "TASKMASTER_TASKS_TABLE": "Table holding the todos (default: todos).",
    # Session
    "TASKMASTER_REMEMBER_SESSION": "Persist the session between runs (true/false, default: true).",
    "TASKMASTER_DATA_DIR": "Local data directory (default: .local/taskmaster).",
    "TASKMASTER_SESSION_PATH": "Session file path (default: <data_dir>/session.json).",
    # HTTP
    "TASKMASTER_HTTP_CONNECT_TIMEOUT_SECONDS": "Connect timeout for backend calls (default: 5).",
    "TASKMASTER_HTTP_READ_TIMEOUT_SECONDS": "Read timeout for backend calls and channel joins (default: 15).",
    # Live updates
    "TASKMASTER_REALTIME_ENABLED": "Subscribe to change notifications (true/false, default: true).",
    "TASKMASTER_REALTIME_HEARTBEAT_SECONDS": "Websocket heartbeat interval (default: 25).",
    "TASKMASTER_REALTIME_RECONNECT_SECONDS": "Delay before rejoining a dropped feed; 0 disables (default: 5).",
    "TASKMASTER_REFRESH_AFTER_WRITE": "Re-fetch after every successful write (true/false, default: false).",
}
