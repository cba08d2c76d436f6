"""
LeadCRM: lead lifecycle, assignment and realtime notification core.
"""

__version__ = "1.0.0"
