"""Defect classification: deterministic rules and classifier strategies"""
