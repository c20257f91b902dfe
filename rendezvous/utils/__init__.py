"""Utilities shared by the signaling server modules."""
from __future__ import annotations
