"""
Mirror a Brandmaker MediaPool catalog into a local directory tree, driven by
webhook events.
"""

__version__ = "0.1.0"
