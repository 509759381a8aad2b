"""Notifications app package.

Handles delivery of notifications via email, Telegram and other channels.
This package will contain tasks for sending asynchronous notifications
using Celery and integration with the Telegram Bot API.
"""
