"""Real-time fan-out — WebSocket rooms + Redis pub/sub.

Learn: Events flow through two paths:
1. Handler → LocalDispatcher → connections held by this process
2. Handler → PubSubBridge → Redis PUBLISH → other processes' bridges
   → their LocalDispatcher

Room membership never leaves the process. Every instance receives every
event and delivers it only to the rooms its own connections joined.
"""
