"""Perspectivized stance vector scoring and consensus analysis."""
