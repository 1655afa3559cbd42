"""Scheduler module for periodic price watch notifications.

Schedule overview:
  - every 60s (SCHEDULER_TICK_SECONDS) - send reports for every due watch job
"""
