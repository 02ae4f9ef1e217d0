# material_planning/batch/__init__.py
from .auto_reorder_job import run_auto_reorder_job

__all__ = [
    'run_auto_reorder_job'
]
