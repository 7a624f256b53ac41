# app/__init__.py
from .config import config, make_job_dir
from .logger import get_logger

__all__ = ["config",
           "make_job_dir",
           "get_logger",
           ]
