"""Patch synthesis: learned / generated / template patches"""
