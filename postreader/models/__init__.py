"""
SQLAlchemy models.
"""
from postreader.models.job import Base, Job, JobStatus

__all__ = ['Base', 'Job', 'JobStatus']
