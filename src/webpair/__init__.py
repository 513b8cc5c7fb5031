"""webpair - pair a phone with the LaterBox web companion over the local network."""

__version__ = "0.1.0"
