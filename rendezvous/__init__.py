"""Rendezvous pairs WebRTC peers by session code and relays their signaling.

* The [`SignalingServer`][rendezvous.server.SignalingServer] tracks
  connected clients and pairing sessions and forwards session descriptions
  and ICE candidates between the two members of a session.
* The [`rendezvous.run`][rendezvous.run] module provides the
  `rendezvous-server` CLI and the periodic session sweeper.
"""
from __future__ import annotations

import importlib.metadata as importlib_metadata

__version__ = importlib_metadata.version('rendezvous')
