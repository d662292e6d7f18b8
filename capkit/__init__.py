"""
capkit - Common Alerting Protocol codec, validator and HTTP wrapper
"""

__version__ = '0.1.0'
