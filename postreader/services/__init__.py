"""
Workflow services: job store, event bus, worker, sweep and collaborators.
"""
