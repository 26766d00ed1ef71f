"""Durable key-value storage for learned patterns"""
