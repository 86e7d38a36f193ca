"""Notifications package for the MediRate API"""
from .sender import EmailDeliveryError, EmailSender, NotificationRequest

__all__ = ["EmailDeliveryError", "EmailSender", "NotificationRequest"]
