"""Guest runtime implementations.

Each subdirectory contains a GuestRuntime adapter for one kind of guest
interpreter.
"""
