"""
Companion sync services.
"""
