"""Reservations app package.

This app encapsulates the screen booking lifecycle: the reservation status
machine, committed-date conflict detection and the service that drives
create/accept/decline/cancel through optimistic store transactions, so a
screen is never committed twice for the same calendar day.
"""
