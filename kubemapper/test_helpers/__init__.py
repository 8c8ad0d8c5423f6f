"""
Shared helpers for testing code built on kubemapper
"""
