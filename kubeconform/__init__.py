"""Validate Kubernetes manifests against JSON schemas."""

__version__ = "0.1.0"