"""
Command line tools for the lead API.
"""
