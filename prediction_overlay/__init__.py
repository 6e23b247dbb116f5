"""
Prediction Overlay Service
Live Twitch prediction state for stream overlays, driven by EventSub WebSocket notifications
"""

__version__ = "0.1.0"
