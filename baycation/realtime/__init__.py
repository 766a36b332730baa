"""Realtime presence and room coordination.

Connection lifecycle, authorization-gated room membership, and the
persist-then-broadcast contract for trip and chat rooms. The Socket.IO binding
lives in ``baycation.realtime.socketio``; everything else is transport-free.
"""
