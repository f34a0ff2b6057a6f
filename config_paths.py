import json
import logging
import os

HOME = os.path.expanduser("~")
XDG_CONFIG_HOME = os.environ.get("XDG_CONFIG_HOME")
CONFIG_HOME = XDG_CONFIG_HOME if XDG_CONFIG_HOME else os.path.join(HOME, ".config")
CONFIG_DIR = os.path.join(CONFIG_HOME, "gridlayer")
CONFIG_JSON = os.path.join(CONFIG_DIR, "config.json")

# default settings
LOG_LEVEL_DEFAULT = "WARNING"
PERSIST_FAILURE_POLICY_DEFAULT = "keep"
PERSIST_FAILURE_POLICIES = {"keep", "revert"}
COLUMN_FORMATS_DEFAULT = {}
PREVIEW_ROWS_DEFAULT = 20

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def ensure_config_dirs():
    os.makedirs(CONFIG_DIR, exist_ok=True)


def load_config():
    cfg = {
        "LOG_LEVEL": LOG_LEVEL_DEFAULT,
        "PERSIST_FAILURE_POLICY": PERSIST_FAILURE_POLICY_DEFAULT,
        "COLUMN_FORMATS": dict(COLUMN_FORMATS_DEFAULT),
        "PREVIEW_ROWS": PREVIEW_ROWS_DEFAULT,
    }

    if os.path.exists(CONFIG_JSON):
        try:
            with open(CONFIG_JSON, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            data = None
        if isinstance(data, dict):
            level = data.get("log_level")
            if isinstance(level, str) and level.upper() in LOG_LEVELS:
                cfg["LOG_LEVEL"] = level.upper()

            policy = data.get("persist_failure_policy")
            if policy in PERSIST_FAILURE_POLICIES:
                cfg["PERSIST_FAILURE_POLICY"] = policy

            formats = data.get("column_formats")
            if isinstance(formats, dict):
                cfg["COLUMN_FORMATS"] = {
                    str(name): fmt
                    for name, fmt in formats.items()
                    if isinstance(fmt, str) and fmt
                }

            rows = data.get("preview_rows")
            if isinstance(rows, int) and not isinstance(rows, bool) and rows > 0:
                cfg["PREVIEW_ROWS"] = rows

    env_level = os.environ.get("LOG_LEVEL", "").upper()
    if env_level in LOG_LEVELS:
        cfg["LOG_LEVEL"] = env_level

    return cfg


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
