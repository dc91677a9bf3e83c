"""Lifecycle status values shared by experiments and preparations."""

from enum import Enum


class Status(str, Enum):
    CREATED = "Created"
    SUCCESS = "Success"
    RUNNING = "Running"
    ERROR = "Error"
    DESTROYED = "Destroyed"
    REVOKED = "Revoked"


def upper_first(value: str) -> str:
    """Bridge lowercase REST input ("running") to stored TitleCase ("Running")."""
    if not value:
        return value
    return value[0].upper() + value[1:]
