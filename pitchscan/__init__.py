"""Resilient video upload and AI inference pipeline for football match analysis."""

__version__ = "0.1.0"
