"""
livechat - realtime visitor/admin chat core

Visitor widget and admin dashboard state machines on top of a SQLModel
session/message store and an in-process realtime hub.
"""

__version__ = "0.1.0"
