"""Segmented key-value store with HTTP services and a hashing load balancer."""

__version__ = "0.1.0"