"""
Utility modules for slam-setup.
"""
