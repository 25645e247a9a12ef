"""
casechat - conversation history compaction for case-management chat
"""

__version__ = "0.1.0"
__logo__ = "🗂️"
