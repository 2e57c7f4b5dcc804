"""
HTTP API for the Thai literacy backend
"""
