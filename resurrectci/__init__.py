"""
ResurrectCI - Autonomous Deployment Remediation Agent.

This package contains the core application logic for watching deployments,
detecting build failures, and automatically driving them back to a healthy state.
"""

__version__ = "0.1.0"
__author__ = "Parth Sinha and Shine Gupta"
