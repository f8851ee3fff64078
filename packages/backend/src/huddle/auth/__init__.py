"""Authentication.

Learn: tokens are issued by the identity service, not here. This package
only verifies them: bearer JWTs on the REST API, and an optional
?token= on the WebSocket handshake.
"""
