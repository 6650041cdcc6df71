"""
Writing exported documents to disk.
"""
from .export_worker import ExportWorker

__all__ = ['ExportWorker']
