"""
Utility functions and helpers.
"""
from .resource_loader import get_app_data_dir, get_resource_path

__all__ = [
    'get_resource_path',
    'get_app_data_dir',
]
