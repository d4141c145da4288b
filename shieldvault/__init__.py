"""
shieldvault: private vault balance reconstruction and proof assembly.
"""

__version__ = "0.1.0"
