"""Kernel services: registry, calendar, sequencing, posting and reversal."""
