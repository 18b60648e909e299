"""
QuietWatch: stand-down notifications for civil-defense alert channels.
"""

__version__ = "1.0.0"
