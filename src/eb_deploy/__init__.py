"""Elastic Beanstalk deployment orchestration."""

__version__ = "0.1.0"
