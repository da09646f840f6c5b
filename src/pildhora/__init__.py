"""Reconcile and audit dispenser records across Firestore and the Realtime Database."""

from __future__ import annotations

from importlib import metadata

try:
    __version__ = metadata.version("pildhora")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+local"
