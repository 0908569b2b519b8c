import os
import platform
import sys

from yt_dlp.version import __version__ as ytdlp_module_version

from engine.paths import CONFIG_DIR, DATA_DIR, LOG_DIR

APP_NAME = "vidshelf"


def get_runtime_info():
    """Versions and directories reported by the ``/api/version`` endpoint."""
    return {
        "app_name": APP_NAME,
        "app_version": os.environ.get("VIDSHELF_VERSION", "0.1.0"),
        "python_version": sys.version.split()[0],
        "platform": platform.system().lower(),
        "yt_dlp_module_version": ytdlp_module_version,
        "data_dir": str(DATA_DIR),
        "config_dir": str(CONFIG_DIR),
        "log_dir": str(LOG_DIR),
    }
