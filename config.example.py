# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from MOOSKINE_* environment variables
(optionally via a local .env file, which is gitignored). Every value has a
default, so an empty environment is a valid setup.

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "MOOSKINE_APP_NAME": "App display name (default: mooskine).",
    "MOOSKINE_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Paths (gitignored)
    "MOOSKINE_DATA_DIR": "Local data directory: store file and mooskine.log (default: .local/mooskine).",
    "MOOSKINE_STORE_NAME": "Store name; the file is <data_dir>/<name>.sqlite3 (default: Mooskine).",
    # Persistence tuning
    "MOOSKINE_AUTOSAVE_INTERVAL": (
        "Seconds between autosave checks (default: 30). Values <= 0 disable autosave with a warning."
    ),
    "MOOSKINE_TRANSFORM_DELAY": "Artificial delay of the /shout background transform in seconds (default: 5).",
    "MOOSKINE_CHECK_DOMAINS": "Reject context access from the wrong thread (true/false, default: true).",
}
