"""Codecs, command-log documents and MIDI export."""
