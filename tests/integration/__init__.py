"""
Integration tests for the prediction overlay service.

Upstream Twitch services (EventSub WebSocket, Helix) are replaced with fakes;
the HTTP layer, dispatcher and state machine are real.
"""
