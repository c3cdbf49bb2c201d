"""
Shared Kernel

Entity/aggregate/event base classes, value objects, the unit of work and the
in-process message bus used by the reservations app.
"""
