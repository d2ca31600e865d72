"""Anonymous broadcast chat.

Independent of the cycle state machine; only the Socket.IO channel is
shared with it.
"""
