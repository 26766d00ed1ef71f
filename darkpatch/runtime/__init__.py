"""Runtime policy, process-scoped state and task scheduling"""
