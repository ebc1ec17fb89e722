"""Notification service: live auction events over server-sent events."""
