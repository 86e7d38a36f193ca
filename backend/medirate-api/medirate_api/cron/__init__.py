"""Cron jobs package for the MediRate API"""
from .expiration_checker import ExpirationChecker, run_expiration_check

__all__ = ["ExpirationChecker", "run_expiration_check"]
