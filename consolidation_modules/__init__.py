"""Consolidation modules: reporting views and the adjustment mutation surface."""
