"""Huddle — team collaboration backend.

Real-time fan-out for chat, typing indicators, document edits,
task boards and notifications, scaled horizontally over Redis pub/sub.
"""

__version__ = "0.1.0"
