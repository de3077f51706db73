"""
EcoReport - geotagged environmental issue reports with live comment threads.
"""

__version__ = "0.1.0"
