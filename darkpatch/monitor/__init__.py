"""Mutation-driven rescanning"""
