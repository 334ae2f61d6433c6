"""
voiceops - resilient async client for the VAPI voice-call platform.
"""

__version__ = "0.1.0"
