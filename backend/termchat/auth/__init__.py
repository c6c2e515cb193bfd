"""Gate: accounts and join tokens.

Services:
    - AccountService: bcrypt password store issuing JWT credential tokens.
    - TokenStore: in-memory join tokens checked by the chat WebSocket handshake.
"""
