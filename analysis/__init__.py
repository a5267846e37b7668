"""Metric kernels and configuration for offline spindle analysis."""
