"""
Resource loading utilities for bundled fonts and per-user data directories.
"""
import os
import sys
from pathlib import Path

APP_NAME = "inkpatch"

# Package root (the directory containing resources/ in a source checkout)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def get_resource_path(relative_path: str) -> str:
    """
    Get the absolute path to a resource file.

    Handles both a source checkout and a PyInstaller bundle.

    Args:
        relative_path: Relative path to the resource from project root

    Returns:
        Absolute path to the resource
    """
    if hasattr(sys, '_MEIPASS'):
        base_path = Path(sys._MEIPASS)
    else:
        base_path = _PROJECT_ROOT

    return str(base_path / relative_path)


def get_app_data_dir(app_name: str = APP_NAME) -> Path:
    """
    Get the application data directory for storing user data.

    Args:
        app_name: Name of the application

    Returns:
        Path to the app data directory
    """
    if os.name == 'nt':  # Windows
        base_dir = os.environ.get('APPDATA', os.path.expanduser('~'))
    elif sys.platform == 'darwin':  # macOS
        base_dir = os.path.expanduser('~/Library/Application Support')
    else:  # Linux and others
        base_dir = os.environ.get('XDG_DATA_HOME', os.path.expanduser('~/.local/share'))

    app_dir = Path(base_dir) / app_name
    app_dir.mkdir(parents=True, exist_ok=True)

    return app_dir
