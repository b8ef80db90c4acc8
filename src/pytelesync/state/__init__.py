"""State layer.

This package owns the latest reading and the connection status: the
store, its connection state machine and the events it fans out.
"""
