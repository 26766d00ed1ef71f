"""Patch application: stable selectors and the style-block registry"""
