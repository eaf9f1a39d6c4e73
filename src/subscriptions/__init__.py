"""Subscriptions: read-only subscriber scoping."""

from src.subscriptions.repository import SubscriptionStore

__all__ = ["SubscriptionStore"]
