"""
Real-time multimodal emergency detection for live voice sessions.

Streams voice audio and transcribed text through acoustic and lexical
analysis, fuses both into a single emergency assessment, and manages the
session lifecycle, retention and alerting around it.
"""

__version__ = "1.0.0"
__author__ = "Voice Safety Team"
