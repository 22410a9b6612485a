"""Fulfillment and availability reconciliation engine for media requests."""

from fulfillment.utils import logging  # noqa: F401  registers the custom log levels
