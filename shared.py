# shared.py

import logging
import platform
import json

from os import getenv
from pathlib import Path
from qt_compat import QStandardPaths

# --------------------
# Versioning
__version__ = "1.0.0"
# --------------------

SETTINGS = {}


# -------------------------------
# Application Paths
# -------------------------------

APP_NAME = "LocateQt"

# AppData for internal use (not user-visible)
DATA_DIR = Path(QStandardPaths.writableLocation(QStandardPaths.AppDataLocation)) / APP_NAME

DATA_DIR.mkdir(parents=True, exist_ok=True)

SETTINGS_FILE = DATA_DIR / "settings.json"

# -------------------------------
# Logging Setup
# -------------------------------
if platform.system() == "Darwin":
    LOG_DIR = Path.home() / "Library" / "Logs" / APP_NAME

elif platform.system() == "Windows":
    LOG_DIR = Path(getenv("APPDATA", str(Path.home() / "AppData" / "Roaming"))) / APP_NAME / "logs"

else:
    LOG_DIR = Path.home() / f".{APP_NAME.lower()}" / "logs"


LOG_DIR.mkdir(parents=True, exist_ok=True)

log_file = LOG_DIR / "locateqt_log.txt"

logging.basicConfig(level=logging.INFO)

# Create app logger
logger = logging.getLogger("LocateQtLogger")
logger.propagate = False

if not logger.handlers:
    fh = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    fh.setLevel(logging.DEBUG)
    formatter = logging.Formatter('[%(asctime)s] %(levelname)s: %(message)s', datefmt='%H:%M:%S')
    fh.setFormatter(formatter)
    logger.addHandler(fh)
    logger.setLevel(logging.DEBUG)

logger.info("   ✅ Logger is ready.")


# --- Location Settings ---
provider             = "auto"
timeout_s            = 30.0
qt_update_timeout_ms = 0
desired_accuracy_m   = 50

# --- Serial GPS ---
serial_port        = ""
serial_baud        = 4800
nmea_fix_timeout_s = 10.0

# last successful fix as {"lat": .., "lon": ..}
last_fix = {}


# -------------------------------
# Settings Keys & Persistence
# -------------------------------

SETTINGS_SCHEMA = {
    "desired_accuracy_m": {"type": "int", "default": 50},
    "last_fix": {"type": "dict", "default": {}},
    "nmea_fix_timeout_s": {"type": "float", "default": 10.0},
    "provider": {"type": "str", "default": "auto"},
    "qt_update_timeout_ms": {"type": "int", "default": 0},
    "serial_baud": {"type": "int", "default": 4800},
    "serial_port": {"type": "str", "default": ""},
    "timeout_s": {"type": "float", "default": 30.0},
}


def to_settings():
    result = {}
    for key, meta in SETTINGS_SCHEMA.items():
        result[key] = globals().get(key, meta["default"])
    return result


def from_settings(settings: dict):
    if not isinstance(settings, dict):
        logger.error("  ❌ shared settings is not a dictionary.")
        return

    for key, meta in SETTINGS_SCHEMA.items():
        expected_type = meta["type"]
        default_value = meta["default"]

        raw_value = settings.get(key, default_value)

        try:
            # Type conversion based on schema
            if expected_type == "int":
                value = int(raw_value)
            elif expected_type == "float":
                value = float(raw_value)
            elif expected_type == "str":
                value = str(raw_value)
            elif expected_type == "dict":
                value = dict(raw_value)
            else:
                value = raw_value

            globals()[key] = value
            SETTINGS[key] = value

        except Exception as e:
            logger.error(f"   ❌ shared Failed to load '{key}' as {expected_type} Error: {e}")
            globals()[key] = default_value
            SETTINGS[key] = default_value


def load_settings():
    try:
        with open(SETTINGS_FILE, "r", encoding="utf-8") as f:
            loaded = json.load(f)

    except Exception as e:
        logger.error(f"   ❌ shared load_settings {e}")
        loaded = {}

    from_settings(loaded)


def save_default_settings():
    try:
        defaults = {k: v["default"] for k, v in SETTINGS_SCHEMA.items()}
        with open(SETTINGS_FILE, "w", encoding="utf-8") as f:
            json.dump(defaults, f, indent=2)
        logger.info("   ✅ Default settings saved successfully.")
    except Exception as e:
        logger.error(f"  ❌ failed to save default settings: {e}")


def save_settings():
    try:
        with open(SETTINGS_FILE, "w", encoding="utf-8") as f:
            json.dump(to_settings(), f, indent=2)
        logger.info("   ✅ Runtime settings saved successfully.")
    except Exception as e:
        logger.error(f"  ❌ save_settings Error: {e}")


def ensure_settings_exists():
    if not SETTINGS_FILE.exists():
        logger.error("   ❌ No settings file found. Saving default settings...")
        save_default_settings()
