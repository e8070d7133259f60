"""Meda Builder - build VM images on the Meda VM manager.

This package drives a Meda backend through a fixed image build lifecycle:
base image, VM create/start, readiness wait, provisioning, snapshot,
optional registry push and VM cleanup.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
