"""
Leadbridge: schema-aware lead transfer into Salesforce.
"""

__version__ = "0.1.0"
