"""Feedback-driven learning: signatures, pattern store, learning report"""
